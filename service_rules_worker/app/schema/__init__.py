"""
Schema helpers package.

- template: Placeholder-based schema templates, rendering to a concrete
  schema plus a pointer map, and the inverse substitution.
- compiler: JSON Schema for handler parameter models.
"""
