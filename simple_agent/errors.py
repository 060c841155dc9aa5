"""Error kinds that end a run before or outside the agent loop."""


class AgentError(Exception):
    pass


class ConfigError(AgentError):
    """Missing or invalid startup input (prompts, config file, API key)."""


class BackendError(AgentError):
    """The model service could not be reached or returned no usable reply."""
