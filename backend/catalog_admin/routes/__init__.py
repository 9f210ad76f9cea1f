from werkzeug.routing import IntegerConverter

from ..validation import INT_MAX


class IdConverter(IntegerConverter):
    """`<id:...>` path segment: unsigned int that fits an INTEGER primary key."""

    def __init__(self, map, *args, **kwargs):
        kwargs.setdefault("max", INT_MAX)
        super().__init__(map, *args, **kwargs)
