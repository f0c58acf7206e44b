"""
Client package for the real-time messaging relay.

This package contains the headless relay client used by the command-line
client and the end-to-end tests.
"""
