"""Domain layer - assessment records, derived statistics and the document model.

Nothing here touches the filesystem, the network or the PDF backend.
"""
