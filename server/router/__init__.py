"""
Router module for channel membership and broadcast.
"""
