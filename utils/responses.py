from flask import jsonify


def ok(code=200, message=None, **payload):
    body = {"success": True}
    if message:
        body["message"] = message
    body.update(payload)
    return jsonify(body), code


def fail(message="Bad Request", code=400, errors=None, **extra):
    payload = {"success": False, "message": message}
    if errors is not None:
        payload["errors"] = errors
    payload.update(extra)
    return jsonify(payload), code
