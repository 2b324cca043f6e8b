"""
Integration tests package.

Contains integration tests that verify the interaction between
multiple components, including database operations, controller
logic, template rendering, and external service integrations.
"""
