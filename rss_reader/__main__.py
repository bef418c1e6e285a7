"""Main module for rss_reader MCP server.

This module allows the server to be run as a Python module using:
python -m rss_reader

It delegates to the server application's main function.
"""

from rss_reader.server.app import main

if __name__ == "__main__":
    main()
