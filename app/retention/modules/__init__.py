"""
Feature modules live under this package.

Keep module boundaries clean: each module owns its queries/services/commands,
while reusing platform primitives (config, audit, DB session).
"""
