"""
Signaling module for relaying WebRTC call setup between users.
"""
