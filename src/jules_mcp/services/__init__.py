"""Session-level operations built on JulesClient and the core reducers."""
