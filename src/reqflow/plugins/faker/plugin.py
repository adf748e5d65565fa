"""Fake data generation for request fields.

:class:`FakerExtension` hooks the ``pre-send`` stage and replaces
``{{$faker.path(args)}}`` templates in the URL, headers, query and path
parameters, and body. The variable resolver leaves these templates alone,
so they survive secure substitution untouched.

Locale and seed can be set in the global config under a ``faker`` key::

    {"faker": {"locale": "de_DE", "seed": 42}}
"""

from __future__ import annotations

from typing import Optional

from faker import Faker

from reqflow.models import (
    GlobalConfig,
    GraphQLBody,
    JsonBody,
    KeyValueRow,
    MultipartBody,
    Stage,
    UrlEncodedBody,
    XmlBody,
    YamlBody,
)
from reqflow.plugins.base import Extension, ExtensionApi
from reqflow.plugins.faker.engine import replace_faker_variables
from reqflow.plugins.hooks import HookContext


class FakerExtension(Extension):
    """Replace ``$faker`` templates just before the request is sent."""

    def __init__(self, fake: Optional[Faker] = None) -> None:
        self._fake = fake

    @property
    def name(self) -> str:
        return "faker"

    @property
    def description(self) -> str:
        return "Generate fake data with {{$faker.category.function()}} templates"

    def on_init(self, config: GlobalConfig) -> None:
        if self._fake is not None:
            return
        settings = (config.model_extra or {}).get("faker") or {}
        self._fake = Faker(settings.get("locale"))
        if settings.get("seed") is not None:
            self._fake.seed_instance(settings["seed"])

    def setup(self, api: ExtensionApi) -> None:
        api.register_hook(Stage.PRE_SEND, self.replace)

    def _fill(self, text: str) -> str:
        if self._fake is None:
            self._fake = Faker()
        return replace_faker_variables(text, self._fake)

    def _fill_rows(self, rows: list[KeyValueRow]) -> None:
        for row in rows:
            if row.enabled:
                row.value = self._fill(row.value)

    def replace(self, ctx: HookContext) -> None:
        request = ctx.request
        request.url = self._fill(request.url)
        self._fill_rows(request.headers)
        self._fill_rows(request.query_params)
        self._fill_rows(request.path_params)

        body = request.body
        if isinstance(body, (JsonBody, XmlBody, YamlBody)):
            body.text = self._fill(body.text)
        elif isinstance(body, UrlEncodedBody):
            self._fill_rows(body.rows)
        elif isinstance(body, MultipartBody):
            self._fill_rows([row for row in body.rows if row.type == "text"])
        elif isinstance(body, GraphQLBody):
            body.query = self._fill(body.query)
            body.variables = self._fill(body.variables)
