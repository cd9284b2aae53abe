"""
repo-agents identity constants.
"""

__version__ = "0.4.0"
__codename__ = "REPO-AGENTS"
__tagline__ = "Agents propose. The pipeline decides."

BANNER = r"""
  ___                    _                    _
 | _ \___ _ __  ___ ___ /_\  __ _ ___ _ _  | |_ ___
 |   / -_) '_ \/ _ \___/ _ \/ _` / -_) ' \ |  _(_-<
 |_|_\___| .__/\___/  /_/ \_\__, \___|_||_| \__/__/
         |_|                |___/
"""
