"""Evaluation of ``{{$faker.path(args)}}`` templates with the Faker library.

Template paths follow the ``category.function`` names request documents
use (``person.firstName``, ``number.int``...). Each one maps to a Faker
provider call in :data:`GENERATORS`. Arguments are JSON, with unquoted
object keys allowed::

    {{$faker.number.int({ min: 10, max: 20 })}}
    {{$faker.lorem.words(3)}}

A template whose path is unknown, or whose arguments cannot be parsed or
are rejected by the provider, is left unchanged.
"""

from __future__ import annotations

import datetime
import json
import logging
import re
from decimal import Decimal
from typing import Any, Callable

from faker import Faker

logger = logging.getLogger(__name__)

FAKER_PATTERN = re.compile(r"\{\{\$faker\.([A-Za-z.]+)\(([\s\S]*?)\)\}\}")

_UNQUOTED_KEY = re.compile(r"([{,]\s*)([A-Za-z_$][\w$]*)(\s*:)")
_SINGLE_QUOTED = re.compile(r"'([^'\\]*(?:\\.[^'\\]*)*)'")

Generator = Callable[[Faker, dict[str, Any], list[Any]], Any]


def _first(args: list[Any], default: Any) -> Any:
    return args[0] if args and not isinstance(args[0], dict) else default


def _amount(fake: Faker, opts: dict[str, Any]) -> str:
    dec = int(opts.get("dec", 2))
    value = fake.pyfloat(
        min_value=float(opts.get("min", 0)),
        max_value=float(opts.get("max", 1000)),
        right_digits=dec,
    )
    return f"{opts.get('symbol', '')}{value:.{dec}f}"


GENERATORS: dict[str, Generator] = {
    "person.firstName": lambda f, o, a: f.first_name(),
    "person.lastName": lambda f, o, a: f.last_name(),
    "person.fullName": lambda f, o, a: f.name(),
    "person.middleName": lambda f, o, a: f.first_name(),
    "person.prefix": lambda f, o, a: f.prefix(),
    "person.suffix": lambda f, o, a: f.suffix(),
    "internet.email": lambda f, o, a: f.email(),
    "internet.userName": lambda f, o, a: f.user_name(),
    "internet.password": lambda f, o, a: f.password(length=int(o.get("length", _first(a, 12)))),
    "internet.url": lambda f, o, a: f.url(),
    "internet.domainName": lambda f, o, a: f.domain_name(),
    "internet.ipv4": lambda f, o, a: f.ipv4(),
    "internet.ipv6": lambda f, o, a: f.ipv6(),
    "internet.mac": lambda f, o, a: f.mac_address(),
    "phone.number": lambda f, o, a: f.phone_number(),
    "location.city": lambda f, o, a: f.city(),
    "location.country": lambda f, o, a: f.country(),
    "location.zipCode": lambda f, o, a: f.postcode(),
    "location.streetAddress": lambda f, o, a: f.street_address(),
    "location.state": lambda f, o, a: f.state(),
    "location.latitude": lambda f, o, a: f.latitude(),
    "location.longitude": lambda f, o, a: f.longitude(),
    "string.uuid": lambda f, o, a: f.uuid4(),
    "number.int": lambda f, o, a: f.random_int(
        min=int(o.get("min", 0)), max=int(o.get("max", _first(a, 9999)))
    ),
    "number.float": lambda f, o, a: f.pyfloat(
        min_value=float(o.get("min", 0)),
        max_value=float(o.get("max", 100)),
        right_digits=int(o.get("fractionDigits", 2)),
    ),
    "datatype.boolean": lambda f, o, a: f.boolean(),
    "date.past": lambda f, o, a: f.past_datetime(start_date=f"-{int(o.get('years', 1))}y"),
    "date.future": lambda f, o, a: f.future_datetime(end_date=f"+{int(o.get('years', 1))}y"),
    "date.recent": lambda f, o, a: f.past_datetime(start_date=f"-{int(o.get('days', 1))}d"),
    "lorem.word": lambda f, o, a: f.word(),
    "lorem.words": lambda f, o, a: f.words(nb=int(_first(a, 3))),
    "lorem.sentence": lambda f, o, a: f.sentence(nb_words=int(_first(a, 6))),
    "lorem.paragraph": lambda f, o, a: f.paragraph(nb_sentences=int(_first(a, 3))),
    "lorem.text": lambda f, o, a: f.text(),
    "company.name": lambda f, o, a: f.company(),
    "company.catchPhrase": lambda f, o, a: f.catch_phrase(),
    "commerce.price": lambda f, o, a: _amount(f, o),
    "finance.accountNumber": lambda f, o, a: f.bban(),
    "finance.amount": lambda f, o, a: _amount(f, o),
    "finance.creditCardNumber": lambda f, o, a: f.credit_card_number(),
    "finance.currencyCode": lambda f, o, a: f.currency_code(),
    "image.url": lambda f, o, a: f.image_url(),
    "image.avatar": lambda f, o, a: f.image_url(width=128, height=128),
}


def parse_args(source: str) -> list[Any]:
    """Parse a faker argument list such as ``{ min: 1, max: 5 }`` or ``3``.

    Raises:
        ValueError: If the arguments are not JSON even after quoting keys.
    """
    trimmed = source.strip()
    if not trimmed:
        return []
    try:
        return json.loads(f"[{trimmed}]")
    except json.JSONDecodeError:
        normalized = _UNQUOTED_KEY.sub(r'\1"\2"\3', trimmed)
        normalized = _SINGLE_QUOTED.sub(
            lambda m: '"' + m.group(1).replace('"', '\\"') + '"', normalized
        )
        return json.loads(f"[{normalized}]")


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return " ".join(str(item) for item in value)
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def generate(fake: Faker, path: str, args_source: str = "") -> str:
    """Run the generator for *path* and return its value as text.

    Raises:
        KeyError: If *path* has no generator.
        ValueError: If the arguments are malformed or rejected.
    """
    generator = GENERATORS[path]
    args = parse_args(args_source)
    options = args[0] if args and isinstance(args[0], dict) else {}
    try:
        return _stringify(generator(fake, options, args))
    except (TypeError, AttributeError) as exc:
        raise ValueError(f"Invalid arguments for $faker.{path}: {exc}") from exc


def replace_faker_variables(text: str, fake: Faker) -> str:
    """Replace every ``{{$faker.path(args)}}`` template in *text*."""
    if not text or "$faker." not in text:
        return text

    def _substitute(match: re.Match[str]) -> str:
        path, args_source = match.group(1), match.group(2)
        try:
            return generate(fake, path, args_source)
        except KeyError:
            logger.debug("Unknown faker function '%s'", path)
        except ValueError as exc:
            logger.debug("Faker template left unchanged: %s", exc)
        return match.group(0)

    return FAKER_PATTERN.sub(_substitute, text)
