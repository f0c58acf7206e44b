"""
Transport module.

Adapts asyncio TCP streams and WebSockets to the relay's Connection interface.
"""
