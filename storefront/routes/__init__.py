from flask import request

from storefront.errors import ValidationError


def parse_body(model):
    """Validate the JSON request body against a pydantic model"""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError('Request body must be a JSON object')
    return model.model_validate(body)
