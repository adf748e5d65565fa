"""reqflow -- extension-driven request pipeline for API-authoring tools.

This package turns an editor-authored request document (a block tree
describing an HTTP, GraphQL or socket request) into an executable request,
runs it through a fixed sequence of extension-contributed stages, dispatches
it through an injected transport, and renders the result back into a
response document.

Typical usage::

    pipeline = RequestPipeline.create(project_dir=".")
    result = await pipeline.send(document)
    result.document          # the rendered response document

Modules:
    models: Pydantic models for request/response state and configuration.
    document: Document tree model and the request compiler.
    secure: Trusted half of the pipeline (environment and variable resolution).
    pipeline: Stage sequencer, execution coordinator and post-processor.
    plugins: Hook registry, extension base class and built-in extensions.
    client: Transport capability and the default httpx transport.
    config: XDG-aware configuration with precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
"""

__version__ = "0.1.0"
