"""Feature pipeline framework.

Value types and helpers shared by the validate/package/collection entrypoints:

- `devfeatures.framework.manifest`: manifest model and loading
- `devfeatures.framework.report`: validation reports and folding
- `devfeatures.framework.heuristics`: advisory install-script predicates
- `devfeatures.framework.artifacts`: atomic artifact writes
- `devfeatures.framework.config`: typed pipeline configuration

Nothing here imports `devfeatures.app`; the app layer composes these pieces.
"""
