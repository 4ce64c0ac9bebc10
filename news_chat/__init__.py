"""
News Chat

A retrieval-augmented chat backend: ingests news feeds, embeds and stores
articles in a vector database, and answers questions grounded in them.
"""

__version__ = "0.1.0"
