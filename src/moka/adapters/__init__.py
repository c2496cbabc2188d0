"""Report adapters: decode build-tool XML into records for the tree engine."""
