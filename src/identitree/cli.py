#!/usr/bin/env python3
"""CLI for Git Identitree (``gidtree``)."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, Prompt
from rich.table import Table

from identitree import __version__
from identitree.config import ensure_directories, get_settings
from identitree.errors import IdentitreeError
from identitree.paths import contract_home
from identitree.profiles import Profile, ProfileStore
from identitree.service import MappingService

console = Console()


def _fail(message: str) -> None:
    console.print(f"[red]Error: {escape(message)}[/red]", soft_wrap=True)
    raise SystemExit(1)


def _load_store() -> ProfileStore:
    return ProfileStore.load(get_settings().profiles_path)


def _profile_names(ctx: click.Context, param: click.Parameter, incomplete: str) -> list[str]:
    """Shell completion for profile name arguments."""
    try:
        return [n for n in _load_store().names() if n.startswith(incomplete)]
    except IdentitreeError:
        return []


def _prompt_profile(defaults: Profile | None = None, **given: str | None) -> Profile:
    """Fill in missing profile fields interactively."""

    def ask(field: str, label: str, required: bool = False) -> str | None:
        if given.get(field) is not None:
            return given[field] or None
        default = getattr(defaults, field, None) or ""
        while True:
            value = Prompt.ask(f"  {label}", default=default, show_default=bool(default)).strip()
            if value or not required:
                return value or None
            console.print(f"  [yellow]{label} is required[/yellow]")

    name = defaults.name if defaults else ask("name", "Profile name", required=True)
    return Profile(
        name=name or "",
        email=ask("email", "Email", required=True) or "",
        author_name=ask("author_name", "Author name (defaults to profile name)"),
        ssh_key_path=ask("ssh_key_path", "SSH key path (e.g. ~/.ssh/id_rsa)"),
        gpg_key_id=ask("gpg_key_id", "GPG key ID"),
    )


@click.group()
@click.version_option(__version__, prog_name="gidtree")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
def cli(verbose: bool) -> None:
    """Git Identitree - Manage Git profiles with directory-based context switching.

    Map a profile to a directory and git picks up its name, email, signing
    key and SSH key for every repository below it.
    """
    if verbose:
        level = "DEBUG"
    else:
        try:
            level = get_settings().log_level
        except IdentitreeError:
            level = "WARNING"
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command()
def init() -> None:
    """Create ~/.gidtree/ and an empty profiles file."""
    try:
        data_dir = ensure_directories()
        store = _load_store()
        if not store.path.exists():
            store.save()
    except IdentitreeError as e:
        _fail(str(e))
    except OSError as e:
        _fail(f"failed to create profiles directory: {e}")

    console.print(f"[green]✓[/green] Initialized Git Identitree at {data_dir}")


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


@cli.group()
def profile() -> None:
    """Manage profiles."""


@profile.command("create")
@click.option("--name", help="Profile name (also the fragment file suffix)")
@click.option("--email", help="Commit email")
@click.option("--author-name", help="Commit author name (defaults to the profile name)")
@click.option("--ssh-key", "ssh_key_path", help="Path to the SSH private key")
@click.option("--gpg-key", "gpg_key_id", help="GPG key ID used for signing")
def profile_create(
    name: str | None,
    email: str | None,
    author_name: str | None,
    ssh_key_path: str | None,
    gpg_key_id: str | None,
) -> None:
    """Create a new profile.

    Prompts for any field not given as an option.
    """
    interactive = name is None or email is None
    if interactive:
        console.print("[bold]New profile[/bold]\n")
        new_profile = _prompt_profile(
            name=name,
            email=email,
            author_name=author_name,
            ssh_key_path=ssh_key_path,
            gpg_key_id=gpg_key_id,
        )
    else:
        new_profile = Profile(
            name=name,
            email=email,
            author_name=author_name or None,
            ssh_key_path=ssh_key_path or None,
            gpg_key_id=gpg_key_id or None,
        )

    try:
        _load_store().add(new_profile)
    except IdentitreeError as e:
        _fail(f"failed to save profile: {e}")

    console.print(f"[green]✓[/green] Profile '{new_profile.name}' created successfully")


@profile.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output profiles as JSON")
def profile_list(as_json: bool) -> None:
    """List all profiles."""
    try:
        store = _load_store()
        service = MappingService.from_settings()
        mappings = service.mappings()
    except IdentitreeError as e:
        _fail(str(e))

    if as_json:
        out = []
        for p in store.list():
            entry = p.to_dict()
            entry["directories"] = [m.directory for m in mappings if m.profile == p.name]
            out.append(entry)
        click.echo(json.dumps(out, indent=2, ensure_ascii=True))
        return

    if len(store) == 0:
        console.print("[yellow]No profiles yet[/yellow]")
        console.print("\n[dim]Create one with: gidtree profile create[/dim]")
        return

    table = Table(title="Profiles")
    table.add_column("Name", style="cyan")
    table.add_column("Email")
    table.add_column("Author")
    table.add_column("SSH Key")
    table.add_column("GPG Key")
    table.add_column("Directories", justify="right")

    for p in store.list():
        mapped = sum(1 for m in mappings if m.profile == p.name)
        table.add_row(
            p.name,
            p.email,
            p.effective_author_name,
            p.ssh_key_path or "-",
            p.gpg_key_id or "-",
            str(mapped),
        )

    console.print(table)


@profile.command("update")
@click.argument("name", shell_complete=_profile_names)
@click.option("--email", help="Commit email")
@click.option("--author-name", help="Commit author name")
@click.option("--ssh-key", "ssh_key_path", help="Path to the SSH private key")
@click.option("--gpg-key", "gpg_key_id", help="GPG key ID used for signing")
def profile_update(
    name: str,
    email: str | None,
    author_name: str | None,
    ssh_key_path: str | None,
    gpg_key_id: str | None,
) -> None:
    """Update an existing profile.

    Without options, prompts with the current values pre-filled. Pass an
    empty string to clear an optional field. Mapped directories pick up
    the change immediately.
    """
    try:
        store = _load_store()
        current = store.get(name)
    except IdentitreeError as e:
        _fail(str(e))

    if all(v is None for v in (email, author_name, ssh_key_path, gpg_key_id)):
        console.print(f"[bold]Update profile '{name}'[/bold]\n")
        updated = _prompt_profile(defaults=current)
    else:
        updated = Profile(
            name=current.name,
            email=current.email if email is None else email,
            author_name=current.author_name if author_name is None else (author_name or None),
            ssh_key_path=current.ssh_key_path if ssh_key_path is None else (ssh_key_path or None),
            gpg_key_id=current.gpg_key_id if gpg_key_id is None else (gpg_key_id or None),
        )

    try:
        store.update(name, updated)
        refreshed = MappingService.from_settings().refresh_fragment(updated)
    except IdentitreeError as e:
        _fail(f"failed to save profile: {e}")

    console.print(f"[green]✓[/green] Profile '{name}' updated successfully")
    if refreshed:
        console.print("[dim]  Regenerated git config for mapped directories[/dim]")


@profile.command("delete")
@click.argument("name", shell_complete=_profile_names)
@click.option("-y", "--yes", is_flag=True, help="Unmap directories without asking")
def profile_delete(name: str, yes: bool) -> None:
    """Delete a profile.

    If the profile is mapped to directories, offers to unmap them first.
    """
    try:
        store = _load_store()
        store.get(name)
        service = MappingService.from_settings()
        directories = service.directories_for_profile(name)
    except IdentitreeError as e:
        _fail(str(e))

    if directories:
        console.print(f"Profile '{name}' is mapped to the following directories:")
        for d in directories:
            console.print(f"  - {d}")
        console.print()
        if not yes and not Confirm.ask(
            "Do you want to unmap all directories and delete the profile?", default=False
        ):
            console.print("Delete cancelled.")
            return

        console.print("\nUnmapping directories...")
        try:
            unmapped = service.unmap_profile(name)
        except IdentitreeError as e:
            _fail(f"failed to unmap directories: {e}")
        for d in unmapped:
            console.print(f"  [green]✓[/green] Unmapped: {d}")

    try:
        store.delete(name, is_mapped=service.is_profile_mapped)
    except IdentitreeError as e:
        _fail(f"failed to delete profile: {e}")

    console.print(f"\n[green]✓[/green] Profile '{name}' deleted successfully")


# ---------------------------------------------------------------------------
# Directory mappings
# ---------------------------------------------------------------------------


@cli.command("map")
@click.argument("profile_name", metavar="PROFILE", shell_complete=_profile_names)
@click.argument("directory", type=click.Path(file_okay=False))
def map_cmd(profile_name: str, directory: str) -> None:
    """Map a profile to a directory.

    Git uses the profile for every repository at or below DIRECTORY.
    """
    try:
        prof = _load_store().get(profile_name)
        MappingService.from_settings().map_profile(prof, directory)
    except IdentitreeError as e:
        _fail(f"failed to map profile: {e}")

    console.print(f"[green]✓[/green] Profile '{profile_name}' mapped to directory '{directory}'")


@cli.command()
@click.argument("directory", type=click.Path(file_okay=False))
def unmap(directory: str) -> None:
    """Remove a directory mapping."""
    try:
        removed = MappingService.from_settings().unmap(directory)
    except IdentitreeError as e:
        _fail(f"failed to unmap directory: {e}")

    if removed:
        console.print(f"[green]✓[/green] Directory '{directory}' unmapped successfully")
    else:
        console.print(f"[dim]Directory '{directory}' was not mapped[/dim]")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output status as JSON")
def status(as_json: bool) -> None:
    """Show the active profile and all directory mappings."""
    try:
        settings = get_settings()
        service = MappingService.from_settings(settings)
        mappings = service.mappings()
        store = ProfileStore.load(settings.profiles_path)
    except IdentitreeError as e:
        _fail(str(e))

    current_dir = os.getcwd()
    active_profile = None
    try:
        active = service.lookup(current_dir)
    except IdentitreeError:
        active = None
    if active is not None and active.profile in store:
        active_profile = store.get(active.profile)

    if as_json:
        status_obj = {
            "current_directory": current_dir,
            "active": None,
            "mappings": [
                {
                    "directory": m.directory,
                    "profile": m.profile,
                    "fragment_path": m.fragment_path,
                    "fragment_exists": Path(m.fragment_path).exists(),
                }
                for m in mappings
            ],
            "gitconfig": {
                "path": str(settings.gitconfig_path),
                "exists": settings.gitconfig_path.exists(),
            },
        }
        if active is not None:
            status_obj["active"] = {
                "directory": active.directory,
                "profile": active.profile,
                "email": active_profile.email if active_profile else None,
            }
        click.echo(json.dumps(status_obj, indent=2, ensure_ascii=True))
        return

    console.print("[bold]Git Identitree Status[/bold]\n")

    console.print("[bold]Current Directory[/bold]")
    console.print(f"  Path: {current_dir}")
    if active_profile is not None:
        console.print(f"  [green]✓ Active profile: {active_profile.name}[/green]")
        console.print(f"    Email: {active_profile.email}")
        if active_profile.ssh_key_path:
            console.print(f"    SSH Key: {active_profile.ssh_key_path}")
        if active_profile.gpg_key_id:
            console.print(f"    GPG Key: {active_profile.gpg_key_id}")
    elif active is not None:
        console.print(f"  [yellow]Mapped to unknown profile '{active.profile}'[/yellow]")
    else:
        console.print("  [dim]No active profile for current directory[/dim]")

    console.print("\n[bold]Directory Mappings[/bold]")
    if not mappings:
        console.print("  [dim]No directory mappings found.[/dim]")
    else:
        table = Table(show_header=True)
        table.add_column("Directory", style="cyan")
        table.add_column("Profile")
        table.add_column("Config")
        for m in mappings:
            fragment = contract_home(m.fragment_path)
            if not Path(m.fragment_path).exists():
                fragment = f"[red]{fragment} (missing)[/red]"
            table.add_row(contract_home(m.directory), m.profile or "[dim]?[/dim]", fragment)
        console.print(table)

    console.print("\n[bold]Git Config[/bold]")
    if settings.gitconfig_path.exists():
        console.print(f"  [green]✓[/green] Main config: {settings.gitconfig_path}")
    else:
        console.print(f"  [red]✗[/red] Main config not found: {settings.gitconfig_path}")


# ---------------------------------------------------------------------------
# SSH agent
# ---------------------------------------------------------------------------


@cli.group()
def ssh() -> None:
    """Manage SSH keys in the SSH agent."""


def _profile_with_key(name: str) -> Profile:
    prof = _load_store().get(name)
    if not prof.ssh_key_path:
        _fail(f"profile '{name}' does not have an SSH key configured")
    return prof


@ssh.command("load")
@click.argument("name", metavar="PROFILE", shell_complete=_profile_names)
def ssh_load(name: str) -> None:
    """Load the SSH key of a profile into the agent."""
    from identitree.ssh_agent import load_key_for_profile

    try:
        load_key_for_profile(_profile_with_key(name))
    except IdentitreeError as e:
        _fail(f"failed to load SSH key: {e}")

    console.print(f"[green]✓[/green] SSH key loaded for profile '{name}'")


@ssh.command("unload")
@click.argument("name", metavar="PROFILE", shell_complete=_profile_names)
def ssh_unload(name: str) -> None:
    """Remove the SSH key of a profile from the agent."""
    from identitree.ssh_agent import unload_key_for_profile

    try:
        unload_key_for_profile(_profile_with_key(name))
    except IdentitreeError as e:
        _fail(f"failed to unload SSH key: {e}")

    console.print(f"[green]✓[/green] SSH key unloaded for profile '{name}'")


@cli.command()
def activate() -> None:
    """Detect the profile for the current directory and load its SSH key."""
    from identitree.ssh_agent import load_key_for_profile

    try:
        mapping = MappingService.from_settings().lookup(os.getcwd())
        if mapping is None:
            console.print("No profile mapped for current directory")
            return
        prof = _load_store().get(mapping.profile)
    except IdentitreeError as e:
        _fail(str(e))

    console.print(f"Active profile: {prof.name}")
    console.print(f"Email: {prof.email}")

    if prof.ssh_key_path:
        try:
            load_key_for_profile(prof)
        except IdentitreeError as e:
            _fail(f"failed to load SSH key: {e}")
        console.print("[green]✓[/green] SSH key loaded")


@cli.command()
def version() -> None:
    """Display the version of gidtree."""
    click.echo(f"gidtree version {__version__}")


if __name__ == "__main__":
    cli()
