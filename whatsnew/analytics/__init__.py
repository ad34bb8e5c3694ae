"""What's New analytics package.

Taxonomy registry, property sanitizer, event validator and tracker that
decide whether a product-telemetry event may leave the process, and in
what shape.
"""
