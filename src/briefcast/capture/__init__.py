"""Signal capture: input classification, enrichment and topic tagging."""
