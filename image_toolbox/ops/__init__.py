"""Use-case / operations layer.

Pure pipeline steps invoked by the sessions: upload validation and the
width/height synchronization state machine. No Qt dependencies.
"""
