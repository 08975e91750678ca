"""
Image gallery backend.

Accepts image uploads, stores them with a remote asset provider, keeps one
metadata record per upload and reconciles those records against the provider
when images are listed.
"""
