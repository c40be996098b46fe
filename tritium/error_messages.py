"""Actionable operator messages for start-up failures.

Each message explains:
1. Which precondition failed
2. Why the run cannot continue
3. How to fix it
"""


class PreflightMessages:
    """Factory for precondition failure messages.

    All methods return a formatted string suitable for printing to the
    operator before the process exits.
    """

    @staticmethod
    def runtime_unreachable(url: str) -> str:
        """Generate error message when the model runtime does not answer.

        Args:
            url: Base URL of the model runtime

        Returns:
            Formatted error message with fix suggestions
        """
        return (
            f"🚫 MODEL RUNTIME UNREACHABLE\n\n"
            f"No response from the model runtime at {url}.\n\n"
            f"💡 How to fix:\n"
            f"  • Start it with: ollama serve\n"
            f"  • Or point to another host with runtime.url in .tritium.json"
        )

    @staticmethod
    def cli_not_found(cli_name: str, backend: str) -> str:
        """Generate error message when an agent CLI is missing.

        Args:
            cli_name: Executable that was looked up on PATH
            backend: Agent backend that needs it

        Returns:
            Formatted error message
        """
        return (
            f"🚫 AGENT CLI NOT FOUND: '{cli_name}'\n\n"
            f"The '{backend}' agent backend runs the '{cli_name}' executable, "
            f"but it is not on PATH.\n\n"
            f"💡 How to fix:\n"
            f"  • Install the CLI and make sure '{cli_name}' resolves in this shell\n"
            f"  • Or choose another backend with --backend"
        )

    @staticmethod
    def gateway_unreachable(url: str, backend: str) -> str:
        """Generate error message when the agent gateway does not answer.

        Args:
            url: Gateway or proxy URL
            backend: Agent backend that talks to it

        Returns:
            Formatted error message
        """
        service = "model proxy" if backend == "claude" else "agent gateway"
        return (
            f"🚫 AGENT GATEWAY UNREACHABLE\n\n"
            f"The {service} for the '{backend}' backend is not responding at {url}.\n\n"
            f"💡 How to fix:\n"
            f"  • Start the {service} and wait for it to report ready\n"
            f"  • Check the URL under agent in .tritium.json"
        )

    @staticmethod
    def coder_model_missing(model: str) -> str:
        """Generate error message when the coding model is not pulled.

        Args:
            model: Model tag that was expected

        Returns:
            Formatted error message
        """
        return (
            f"🚫 CODING MODEL NOT AVAILABLE: {model}\n\n"
            f"The model runtime does not list '{model}'.\n\n"
            f"💡 How to fix:\n"
            f"  • Pull it with: ollama pull {model}\n"
            f"  • Or set runtime.coder_model in .tritium.json"
        )

    @staticmethod
    def session_not_found(name: str, session_path: str) -> str:
        """Generate error message when --resume names an unknown project.

        Args:
            name: Project name passed to --resume
            session_path: Where the session file was expected

        Returns:
            Formatted error message
        """
        return (
            f"🚫 NO SESSION TO RESUME: {name}\n\n"
            f"Expected a session file at {session_path}.\n\n"
            f"💡 How to fix:\n"
            f"  • Check the project name, or pass --dir for a custom output directory\n"
            f"  • Start a new run by passing a description instead of --resume"
        )

    @staticmethod
    def generation_failed(output_dir: str) -> str:
        """Generate error message when initial generation produced nothing.

        Args:
            output_dir: Directory the agent was asked to build into

        Returns:
            Formatted error message
        """
        return (
            f"🚫 GENERATION FAILED\n\n"
            f"No source files were created in {output_dir}.\n\n"
            f"💡 How to fix:\n"
            f"  • Check the agent log under logs/ for errors\n"
            f"  • Confirm the coding model answers a simple prompt\n"
            f"  • Retry with a more specific description"
        )


class VisionWarnings:
    """Non-fatal warnings printed when the vision gate is switched off."""

    @staticmethod
    def model_missing(model: str) -> str:
        """Warning for a vision model that is not available in the runtime."""
        return (
            f"⚠️ Vision model '{model}' not found, vision gate disabled "
            f"(pull it with: ollama pull {model})"
        )

    @staticmethod
    def browser_missing() -> str:
        """Warning for a missing headless browser."""
        return (
            "⚠️ No headless browser available, vision gate disabled "
            "(install one with: playwright install chromium)"
        )
