"""Revenue Intelligence MCP Server.

Ask your AI how much Medicare revenue a provider, a group practice, or an
acquisition portfolio is leaving on the table, scored against CMS specialty
benchmarks.
"""

__version__ = "0.1.0"
