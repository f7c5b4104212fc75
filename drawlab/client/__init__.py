"""
Client-side pieces: local session store, timed test flow, video
recommendations and the HTTP client
"""
