"""Service layer for Data Portrait.

Connector sessions and operations, payload transforms, purchase
aggregation, analytics and caller geolocation.
"""
