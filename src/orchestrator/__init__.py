"""Connection orchestration for Data Portrait.

Subpackages:
    models: Purchase records and declarative payload transform schemas.
    signin: Sign-in state machine, polling and orchestrator.
"""
