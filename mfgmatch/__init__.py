"""Backend package: DB models, catalog collaborators, matching pipeline, API.

The core is the manufacturer matching engine in ``pipelines.matching`` and
the seven criteria in ``rules``.
"""
