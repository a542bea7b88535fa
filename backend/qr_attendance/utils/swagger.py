# backend/qr_attendance/utils/swagger.py
"""Swagger/OpenAPI configuration for the application."""
from flask_swagger_ui import get_swaggerui_blueprint

# Swagger UI configuration
SWAGGER_URL = '/api/docs'
API_URL = '/api/swagger.json'

def get_swagger_blueprint():
    """Create and return swagger UI blueprint."""
    swaggerui_blueprint = get_swaggerui_blueprint(
        SWAGGER_URL,
        API_URL,
        config={
            'app_name': "QR Attendance Service API",
            'defaultModelsExpandDepth': -1,
            'docExpansion': 'list',
            'validatorUrl': None,
        }
    )
    return swaggerui_blueprint

def _secured(summary, tag, body=None, responses=None):
    operation = {
        'tags': [tag],
        'summary': summary,
        'security': [{'bearerAuth': []}],
        'responses': responses or {
            '200': {'description': 'Success', 'content': {'application/json': {
                'schema': {'$ref': '#/components/schemas/Envelope'}}}},
            '400': {'$ref': '#/components/responses/Error'},
            '404': {'$ref': '#/components/responses/Error'},
        }
    }
    if body:
        operation['requestBody'] = {
            'required': True,
            'content': {'application/json': {'schema': {'$ref': f'#/components/schemas/{body}'}}}
        }
    return operation

def generate_swagger_spec():
    """Generate OpenAPI/Swagger specification."""
    return {
        "openapi": "3.0.0",
        "info": {
            "title": "QR Attendance Service API",
            "description": "Class sessions, rotating QR tokens and round-based attendance",
            "version": "1.0.0"
        },
        "servers": [
            {"url": "/", "description": "Current server"}
        ],
        "components": {
            "securitySchemes": {
                "bearerAuth": {
                    "type": "http",
                    "scheme": "bearer",
                    "bearerFormat": "JWT"
                }
            },
            "responses": {
                "Error": {
                    "description": "Request rejected",
                    "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Error"}}}
                }
            },
            "schemas": {
                "Envelope": {
                    "type": "object",
                    "properties": {
                        "error": {"type": "boolean", "example": False},
                        "message": {"type": "string"},
                        "data": {"type": "object"}
                    }
                },
                "Error": {
                    "type": "object",
                    "properties": {
                        "error": {"type": "boolean", "example": True},
                        "message": {"type": "string"},
                        "status_code": {"type": "integer"},
                        "code": {
                            "type": "string",
                            "example": "token_expired",
                            "description": "validation_error, invalid_round, not_found, state_error, "
                                           "round_limit_reached, stale_round, device_already_used, "
                                           "not_enrolled, token_forged, token_expired, "
                                           "token_session_closed, token_stale_round, out_of_range, "
                                           "storage_timeout, forbidden"
                        },
                        "details": {"type": "object"}
                    }
                },
                "OpenSession": {
                    "type": "object",
                    "required": ["course_id", "date", "time"],
                    "properties": {
                        "course_id": {"type": "integer"},
                        "date": {"type": "string", "format": "date"},
                        "time": {"type": "string", "example": "09:30"},
                        "topic": {"type": "string"},
                        "classroom": {"type": "string"},
                        "broadcast_duration": {"type": "integer", "description": "Token validity in seconds"},
                        "max_count": {"type": "integer", "description": "Number of rounds"}
                    }
                },
                "MaxCount": {
                    "type": "object",
                    "required": ["max_count"],
                    "properties": {"max_count": {"type": "integer"}}
                },
                "AdvanceRound": {
                    "type": "object",
                    "properties": {"expected_round": {"type": "integer"}}
                },
                "GenerateQR": {
                    "type": "object",
                    "required": ["session_id"],
                    "properties": {
                        "session_id": {"type": "integer"},
                        "with_image": {"type": "boolean", "default": True}
                    }
                },
                "ValidateQR": {
                    "type": "object",
                    "required": ["qr_token"],
                    "properties": {"qr_token": {"type": "string"}}
                },
                "CheckIn": {
                    "type": "object",
                    "required": ["qr_token"],
                    "properties": {
                        "qr_token": {"type": "string"},
                        "device_id": {"type": "string", "description": "Identifier of the scanning phone"},
                        "location": {
                            "type": "object",
                            "properties": {
                                "latitude": {"type": "number"},
                                "longitude": {"type": "number"}
                            }
                        }
                    }
                },
                "ManualEntry": {
                    "type": "object",
                    "required": ["session_id", "university_code"],
                    "properties": {
                        "session_id": {"type": "integer"},
                        "university_code": {"type": "string"},
                        "status": {"type": "string", "enum": ["attended", "absent", "late", "excused"]},
                        "round": {"type": "integer"},
                        "note": {"type": "string"}
                    }
                },
                "UpdateRecord": {
                    "type": "object",
                    "properties": {
                        "status": {"type": "string", "enum": ["attended", "absent", "late", "excused"]},
                        "note": {"type": "string"}
                    }
                }
            }
        },
        "paths": {
            "/api/sessions": {
                "post": _secured("Open a class session", "Sessions", "OpenSession"),
                "get": _secured("List sessions (?course_id=)", "Sessions")
            },
            "/api/sessions/{session_id}": {
                "get": _secured("Session metadata", "Sessions"),
                "delete": _secured("Delete a session and its attendance (admin)", "Sessions")
            },
            "/api/sessions/{session_id}/close": {
                "post": _secured("Close a session", "Sessions")
            },
            "/api/sessions/{session_id}/max-count": {
                "put": _secured("Change the number of rounds", "Sessions", "MaxCount")
            },
            "/api/sessions/{session_id}/rounds/advance": {
                "post": _secured("Start the next round and rotate the secret", "Rounds", "AdvanceRound")
            },
            "/api/sessions/{session_id}/rounds/current": {
                "get": _secured("Active round", "Rounds")
            },
            "/api/qr/generate": {
                "post": _secured("Token and QR image for the active round", "QR", "GenerateQR")
            },
            "/api/qr/validate": {
                "post": _secured("Validate a scanned token", "QR", "ValidateQR")
            },
            "/api/attendance/check-in": {
                "post": _secured("Student check-in with a scanned token", "Attendance", "CheckIn")
            },
            "/api/attendance/manual": {
                "post": _secured("Instructor entry by university code", "Attendance", "ManualEntry")
            },
            "/api/attendance/{record_id}": {
                "put": _secured("Edit a record's status or note", "Attendance", "UpdateRecord")
            },
            "/api/attendance/sessions/{session_id}": {
                "get": _secured("Records and per-round summary of a session (?round=)", "Attendance")
            },
            "/api/attendance/students/{student_id}": {
                "get": _secured("A student's attendance", "Attendance")
            },
            "/api/audit/violations": {
                "get": _secured("Duplicate attendance groups (admin)", "Audit")
            },
            "/api/audit/repair": {
                "post": _secured("Repair duplicate attendance groups (admin)", "Audit")
            }
        }
    }
