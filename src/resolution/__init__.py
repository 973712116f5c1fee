"""Effective-model resolution: cache, context, resolver, annotation and refresh."""
