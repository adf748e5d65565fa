"""Fake data extension backed by the Faker library.

See Also:
    :class:`~reqflow.plugins.faker.plugin.FakerExtension`
"""

from reqflow.plugins.faker.engine import replace_faker_variables
from reqflow.plugins.faker.plugin import FakerExtension

__all__ = ["FakerExtension", "replace_faker_variables"]
