"""The paginated section engine: cursors, sections, tasks and the host that routes between them."""
