"""Tool servers exposed to the research agents."""
