"""Mention processing: text vectors and issue clustering."""
