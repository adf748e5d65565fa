"""Request documents and their compilation into requests.

* :class:`Document` / :class:`Block` -- the block tree an editor produces.
* :class:`BlockType` -- the closed set of block kinds.
* :class:`RequestCompiler` -- document to :class:`~reqflow.models.RequestState`.
"""

from reqflow.document.blocks import Block, BlockType, Document
from reqflow.document.compiler import RequestCompiler, parse_document, strip_json_comments

__all__ = [
    "Block",
    "BlockType",
    "Document",
    "RequestCompiler",
    "parse_document",
    "strip_json_comments",
]
