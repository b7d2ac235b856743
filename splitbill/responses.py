import traceback

from flask import current_app, jsonify, request


def _request_info():
    return {
        'ip': request.remote_addr,
        'method': request.method,
        'url': request.url,
    }


def success_response(data=None, message='Success', status_code=200):
    """Wrap data in the standard success envelope"""
    return jsonify({
        'status': True,
        'statusCode': status_code,
        'request': _request_info(),
        'message': message,
        'data': data,
    }), status_code


def created_response(data=None, message='Resource created successfully'):
    return success_response(data, message, 201)


def error_response(message='Error', status_code=500, errors=None, exception=None):
    """Wrap an error in the standard envelope; traces are only exposed in debug mode"""
    response = {
        'status': False,
        'statusCode': status_code,
        'request': _request_info(),
        'message': message,
    }

    if errors:
        response['errors'] = errors

    if exception is not None and status_code != 404 and current_app.config.get('DEBUG'):
        frames = traceback.extract_tb(exception.__traceback__)[-5:]
        response['debug'] = {
            'exception': type(exception).__name__,
            'message': str(exception),
            'trace': [
                {'file': f.filename, 'line': f.lineno, 'function': f.name}
                for f in frames
            ],
        }

    return jsonify(response), status_code
