"""State layer.

Owns the last-known record for every entity of a session and is the
only place where a fresh snapshot is compared against it.
"""
