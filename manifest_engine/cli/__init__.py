"""
Command line tools for working with application manifests offline.
"""
