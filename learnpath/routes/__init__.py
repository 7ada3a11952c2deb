from werkzeug.exceptions import BadRequest, UnprocessableEntity


def required_text(data, name):
    value = data.get(name)
    if not isinstance(value, str) or not value.strip():
        raise UnprocessableEntity(f"'{name}' is required")
    return value.strip()


def as_enum(enum_cls, value, name):
    try:
        return enum_cls(value)
    except ValueError:
        raise BadRequest(f"invalid {name}: {value!r}")


def pick(data, fields):
    """Map camelCase payload keys onto keyword arguments, skipping absent ones."""
    return {arg: data[key] for key, arg in fields.items() if key in data}
