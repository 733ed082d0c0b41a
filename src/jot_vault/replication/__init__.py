"""Replicated document bodies: transport codec, block reading and the live cache."""
