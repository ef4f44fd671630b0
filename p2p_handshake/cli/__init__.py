"""
P2P Handshake - CLI Package
"""
