from repo_agents.identity import __version__

__all__ = ["__version__"]
