"""mdscribe -- turn raw transcripts into readable markdown with a language model.

The package sends transcript text to one of several interchangeable model
backends (a local Ollama server or a hosted API) and keeps the secrets those
backends need in the operating system's credential store instead of shell
history or config files.

Typical workflow::

    mdscribe auth set-key openai        # store an API key in the keychain
    mdscribe provider add work --type openai --model gpt-4o
    mdscribe provider use work
    mdscribe format transcript.txt      # print the formatted markdown

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models for configuration and the provider registry.
    config: XDG-aware configuration loading and saving.
    dispatcher: Provider selection, validation, and invocation.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.3.0"

APP_NAME = "mdscribe"
