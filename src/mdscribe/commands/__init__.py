"""Built-in CLI sub-commands for mdscribe.

* :mod:`~mdscribe.commands.format` -- format a transcript with the
  configured provider.
* :mod:`~mdscribe.commands.config` -- view and modify settings.
* :mod:`~mdscribe.commands.provider` -- manage named provider entries.
* :mod:`~mdscribe.commands.auth` -- store API keys and run OAuth login.
* :mod:`~mdscribe.commands.models` -- manage models on the local server.

Multi-command groups export a :class:`typer.Typer` sub-application; the
single ``format`` command is a plain callback registered on the root app.
"""
