"""
Club email package.

Modules:
- client: EmailClient for sending templated emails via the Communications Service API

Templates are rendered by the Communications Service; services only send a
template type and its data.
"""
