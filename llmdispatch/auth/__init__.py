"""Bearer-token authentication of API callers."""
