"""
vecsum - authenticated vector summation server.

Clients authenticate with a salted SHA-224 handshake and then stream
batches of uint32 vectors; the server answers each vector with its sum
clamped to the non-negative int32 range.
"""
__version__ = "1.0.0"
