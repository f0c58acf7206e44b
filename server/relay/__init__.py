"""
Relay module: inbound event dispatch.
"""
