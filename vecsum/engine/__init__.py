"""
Protocol engine: hex codec, stream framing, credential store,
authentication, vector batch processing and the per-connection session.
"""
