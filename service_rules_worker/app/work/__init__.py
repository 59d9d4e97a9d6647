"""
Work package.

- models: CompiledWork (rule link, action, path, schema, options), the Rule
  document and the plain RuleState struct derived from rule changes.
- runner: WorkRunner, which keeps one piece of work's item watch open
  exactly while its rule is enabled.
"""
