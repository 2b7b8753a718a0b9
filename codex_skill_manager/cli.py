"""CLI entry point for codex-skills"""

import asyncio
import json
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from codex_skill_manager import __version__
from codex_skill_manager.config import build_remote_client, build_remote_store, build_skill_store, load_settings
from codex_skill_manager.errors import SkillManagerError
from codex_skill_manager.models import FAILED, MISSING, RemoteSkill
from codex_skill_manager.platforms import SkillPlatform
from codex_skill_manager.scanners.metadata import format_title

PLATFORM_CHOICE = click.Choice(SkillPlatform.keys(), case_sensitive=False)


def _platforms(keys):
    return [SkillPlatform.from_key(key) for key in keys]


def _fail(e):
    click.echo(f"❌ Error: {e}", err=True)
    raise click.Abort()


def _skill_to_dict(skill):
    return {
        "id": skill.id,
        "name": skill.name,
        "display_name": skill.display_name,
        "description": skill.description,
        "platform": skill.platform.storage_key if skill.platform else None,
        "custom_path": str(skill.custom_path.path) if skill.custom_path else None,
        "folder": skill.folder,
        "references": [r.name for r in skill.references],
        "tags": skill.stats.tag_labels,
        "frontmatter": skill.frontmatter_extra,
    }


def _group_line(group):
    platforms = ", ".join(p.storage_key for p in SkillPlatform if p in group.installed_platforms)
    tags = ", ".join(group.preferred.stats.tag_labels)
    line = f"  - {group.display_name} ({group.slug}) [{platforms}]"
    if tags:
        line += f" · {tags}"
    return line


def _print_remote_table(title, skills, installed):
    table = Table(title=title)
    table.add_column("Slug", style="bold")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Installed")
    table.add_column("Summary")
    for skill in skills:
        platforms = installed.get(skill.slug, set())
        table.add_row(
            skill.slug,
            skill.display_name,
            skill.latest_version or "-",
            ", ".join(p.storage_key for p in SkillPlatform if p in platforms) or "-",
            skill.summary or "",
        )
    Console().print(table)


@click.group()
@click.version_option(version=__version__)
@click.option("--home", type=click.Path(path_type=Path), help="Override the home directory platform roots live in")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
@click.pass_context
def cli(ctx, home, verbose):
    """Codex Skill Manager - Browse, install and import agent skills"""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)
    ctx.obj = load_settings(home=home)


# ----------------------------------------------------------------------
# Local skills


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.option("--parallel/--sequential", default=True, help="Scan roots in parallel")
@click.pass_obj
def scan(settings, output_json, parallel):
    """Scan every platform root and custom path"""
    try:
        store = build_skill_store(settings, parallel=parallel)
        asyncio.run(store.refresh())
        if store.list_state == FAILED:
            raise SkillManagerError(store.list_error)

        if output_json:
            payload = {
                "skills": [_skill_to_dict(s) for s in store.skills],
                "errors": store.scan_errors,
            }
            click.echo(json.dumps(payload, indent=2, default=str))
            return

        groups = store.grouped_local_skills()
        click.echo(f"🔍 Found {len(store.skills)} skills ({len(groups)} unique)")
        for group in groups:
            click.echo(_group_line(group))

        by_id = {p.id: p for p in store.custom_paths.paths}
        for path_id, custom_groups in store.custom_path_groups().items():
            custom_path = by_id.get(path_id)
            label = f"{custom_path.display_name} ({custom_path.path})" if custom_path else path_id
            click.echo(f"\n📁 {label}")
            if not custom_groups:
                click.echo("  (no skills)")
            for group in custom_groups:
                click.echo(_group_line(group))

        if store.scan_errors:
            click.echo("\n⚠️  Errors encountered:")
            for error in store.scan_errors:
                click.echo(f"   - {error}")

    except (SkillManagerError, ValueError) as e:
        _fail(e)
    except Exception as e:
        click.echo(f"❌ Unexpected error: {e}", err=True)
        raise click.Abort()


async def _load_skill(store, skill_id):
    await store.refresh()
    if store.skill(skill_id) is None:
        raise SkillManagerError(f"No skill with id '{skill_id}'")
    await store.select_skill(skill_id)


@cli.command()
@click.argument("skill_id")
@click.option("--raw", is_flag=True, help="Print markdown without rendering")
@click.pass_obj
def show(settings, skill_id, raw):
    """Show a local skill's SKILL.md"""
    try:
        store = build_skill_store(settings)
        asyncio.run(_load_skill(store, skill_id))

        if store.detail_state == MISSING:
            raise SkillManagerError(f"SKILL.md is missing for '{skill_id}'")
        if store.detail_state == FAILED:
            raise SkillManagerError(store.detail_error)

        skill = store.selected_skill
        if raw:
            click.echo(store.selected_markdown)
            return

        click.echo(f"📄 {skill.display_name}")
        click.echo(f"   {skill.description}")
        click.echo(f"   {skill.folder}")
        if skill.stats.tag_labels:
            click.echo(f"   {', '.join(skill.stats.tag_labels)}")
        click.echo("")
        Console().print(Markdown(store.selected_markdown))

    except (SkillManagerError, ValueError) as e:
        _fail(e)
    except Exception as e:
        click.echo(f"❌ Unexpected error: {e}", err=True)
        raise click.Abort()


@cli.command()
@click.argument("skill_id")
@click.argument("reference", required=False)
@click.option("--raw", is_flag=True, help="Print markdown without rendering")
@click.pass_obj
def refs(settings, skill_id, reference, raw):
    """List a skill's reference files, or show one by name"""
    try:
        store = build_skill_store(settings)

        async def run():
            await _load_skill(store, skill_id)
            if reference is None:
                return
            skill = store.selected_skill
            match = next(
                (r for r in skill.references if reference in (r.id, r.name, r.path.name, r.path.stem)),
                None,
            )
            if match is None:
                raise SkillManagerError(f"No reference '{reference}' in '{skill_id}'")
            await store.select_reference(match.id)

        asyncio.run(run())
        skill = store.selected_skill

        if reference is None:
            click.echo(f"📚 References for {skill.display_name} ({len(skill.references)})")
            for ref in skill.references:
                click.echo(f"  - {ref.name} ({ref.path.name})")
            return

        if store.reference_state == MISSING:
            raise SkillManagerError(f"Reference '{reference}' is missing")
        if store.reference_state == FAILED:
            raise SkillManagerError(store.reference_error)
        if raw:
            click.echo(store.selected_reference_markdown)
        else:
            Console().print(Markdown(store.selected_reference_markdown))

    except (SkillManagerError, ValueError) as e:
        _fail(e)
    except Exception as e:
        click.echo(f"❌ Unexpected error: {e}", err=True)
        raise click.Abort()


@cli.command()
@click.argument("skill_ids", nargs=-1, required=True)
@click.option("--yes", is_flag=True, help="Don't ask for confirmation")
@click.pass_obj
def delete(settings, skill_ids, yes):
    """Delete local skills by id"""
    try:
        store = build_skill_store(settings)
        asyncio.run(store.refresh())

        unknown = [i for i in skill_ids if store.skill(i) is None]
        if unknown:
            raise SkillManagerError(f"Unknown skill id(s): {', '.join(unknown)}")

        if not yes:
            click.confirm(f"Delete {len(skill_ids)} skill folder(s)?", abort=True)

        asyncio.run(store.delete_skills(skill_ids))
        remaining = [i for i in skill_ids if store.skill(i) is not None]
        for skill_id in skill_ids:
            if skill_id in remaining:
                click.echo(f"⚠️  Couldn't delete {skill_id}")
            else:
                click.echo(f"🗑️  Deleted {skill_id}")

    except (SkillManagerError, ValueError) as e:
        _fail(e)


@cli.command()
@click.argument("slug")
@click.option("--platform", "platform_keys", type=PLATFORM_CHOICE, multiple=True, required=True, help="Platform to install into (repeatable)")
@click.pass_obj
def install(settings, slug, platform_keys):
    """Download a registry skill and install it"""
    try:
        targets = _platforms(platform_keys)
        store = build_skill_store(settings)

        async def run():
            async with build_remote_client(settings) as client:
                version = await client.fetch_latest_version(slug)
                skill = RemoteSkill(slug=slug, display_name=format_title(slug), latest_version=version)
                await store.install_remote_skill(skill, client, targets)
            return version

        click.echo(f"📦 Installing {slug}...")
        version = asyncio.run(run())

        click.echo(f"✅ Installed {slug}" + (f" v{version}" if version else ""))
        for platform in targets:
            click.echo(f"   {platform.title}: {platform.root(settings.home) / slug}")

    except (SkillManagerError, ValueError) as e:
        _fail(e)
    except Exception as e:
        click.echo(f"❌ Unexpected error: {e}", err=True)
        raise click.Abort()


@cli.command(name="import")
@click.argument("source", type=click.Path(path_type=Path))
@click.option("--platform", "platform_keys", type=PLATFORM_CHOICE, multiple=True, required=True, help="Platform to import into (repeatable)")
@click.pass_obj
def import_(settings, source, platform_keys):
    """Import a skill folder or .zip archive"""
    try:
        targets = _platforms(platform_keys)
        store = build_skill_store(settings)

        async def run():
            candidate = await store.prepare_import(source)
            click.echo(f"📥 Importing {candidate.skill_name} from {candidate.root}")
            try:
                return await store.import_skill(candidate, targets)
            except BaseException:
                store.discard_import(candidate)
                raise

        written = asyncio.run(run())
        click.echo("✅ Import complete!")
        for path in written:
            click.echo(f"   {path}")

    except (SkillManagerError, ValueError) as e:
        _fail(e)
    except Exception as e:
        click.echo(f"❌ Unexpected error: {e}", err=True)
        raise click.Abort()


# ----------------------------------------------------------------------
# Remote registry


@cli.command()
@click.option("--limit", default=None, type=int, help="Number of skills to list")
@click.pass_obj
def latest(settings, limit):
    """List the newest skills on the registry"""
    try:
        local = build_skill_store(settings)

        async def run():
            async with build_remote_client(settings) as client:
                remote = build_remote_store(settings, client)
                await asyncio.gather(remote.load_latest(limit or settings.latest_limit), local.refresh())
            return remote

        remote = asyncio.run(run())
        if remote.latest_state == FAILED:
            raise SkillManagerError(remote.latest_error)
        _print_remote_table("Latest skills", remote.latest_skills, local.install_status(remote.latest_skills))

    except (SkillManagerError, ValueError) as e:
        _fail(e)
    except Exception as e:
        click.echo(f"❌ Unexpected error: {e}", err=True)
        raise click.Abort()


@cli.command()
@click.argument("query")
@click.option("--limit", default=None, type=int, help="Maximum number of results")
@click.pass_obj
def search(settings, query, limit):
    """Search the registry"""
    try:
        local = build_skill_store(settings)

        async def run():
            async with build_remote_client(settings) as client:
                remote = build_remote_store(settings, client)
                await asyncio.gather(remote.search(query, limit or settings.search_limit), local.refresh())
            return remote

        remote = asyncio.run(run())
        if remote.search_state == FAILED:
            raise SkillManagerError(remote.search_error)

        if not remote.search_results:
            click.echo(f"🔍 No skills found matching '{query}'")
            return
        click.echo(f"🔍 Found {len(remote.search_results)} skills matching '{query}'")
        _print_remote_table("Search results", remote.search_results, local.install_status(remote.search_results))

    except (SkillManagerError, ValueError) as e:
        _fail(e)
    except Exception as e:
        click.echo(f"❌ Unexpected error: {e}", err=True)
        raise click.Abort()


@cli.command(name="remote-show")
@click.argument("slug")
@click.option("--raw", is_flag=True, help="Print markdown without rendering")
@click.pass_obj
def remote_show(settings, slug, raw):
    """Show a registry skill's SKILL.md"""
    try:

        async def run():
            async with build_remote_client(settings) as client:
                remote = build_remote_store(settings, client)
                await remote.search(slug, settings.search_limit)
                if not any(s.slug == slug for s in remote.search_results):
                    raise SkillManagerError(f"No registry skill with slug '{slug}'")
                await remote.select_skill(slug)
            return remote

        remote = asyncio.run(run())
        if remote.detail_state == FAILED:
            raise SkillManagerError(remote.detail_error)

        skill = remote.selected_skill
        click.echo(f"🌐 {skill.display_name}" + (f" v{skill.latest_version}" if skill.latest_version else ""))
        owner = remote.detail_owner
        if owner and (owner.handle or owner.display_name):
            click.echo(f"   by {owner.display_name or owner.handle}" + (f" (@{owner.handle})" if owner.handle else ""))
        if skill.summary:
            click.echo(f"   {skill.summary}")
        click.echo("")
        if raw:
            click.echo(remote.detail_markdown)
        else:
            Console().print(Markdown(remote.detail_markdown))

    except (SkillManagerError, ValueError) as e:
        _fail(e)
    except Exception as e:
        click.echo(f"❌ Unexpected error: {e}", err=True)
        raise click.Abort()


# ----------------------------------------------------------------------
# Custom paths


@cli.group()
def paths():
    """Manage custom skill directories"""
    pass


@paths.command(name="list")
@click.pass_obj
def list_paths(settings):
    """List registered custom paths"""
    store = build_skill_store(settings)
    entries = store.custom_paths.paths
    if not entries:
        click.echo("No custom paths registered.")
        return
    for entry in entries:
        status = "" if entry.path.exists() else " (missing)"
        click.echo(f"  - {entry.display_name}: {entry.path}{status}  [{entry.id}]")


@paths.command(name="add")
@click.argument("path", type=click.Path(path_type=Path))
@click.pass_obj
def add_path(settings, path):
    """Register a custom skill directory"""
    try:
        store = build_skill_store(settings)
        entry = asyncio.run(store.add_custom_path(path))
        count = sum(1 for s in store.skills if s.custom_path and s.custom_path.id == entry.id)
        click.echo(f"✅ Added {entry.path} ({count} skills)")
    except (SkillManagerError, ValueError, OSError) as e:
        _fail(e)


@paths.command(name="remove")
@click.argument("path", type=click.Path(path_type=Path))
@click.pass_obj
def remove_path(settings, path):
    """Unregister a custom skill directory"""
    try:
        store = build_skill_store(settings)
        before = len(store.custom_paths.paths)
        asyncio.run(store.remove_custom_path(path))
        if len(store.custom_paths.paths) == before:
            click.echo(f"⚠️  {path} was not registered")
        else:
            click.echo(f"🗑️  Removed {path}")
    except (SkillManagerError, ValueError, OSError) as e:
        _fail(e)


@paths.command(name="preview")
@click.argument("path", type=click.Path(path_type=Path))
@click.pass_obj
def preview_path(settings, path):
    """Show which skills a directory would contribute"""
    store = build_skill_store(settings)
    found = store.preview_custom_path(path)
    if not found:
        click.echo(f"No skills found under {path}")
        return
    for platform, skills in found.items():
        click.echo(f"{platform.title} ({len(skills)})")
        for skill in skills:
            click.echo(f"  - {skill.display_name} ({skill.name})")


if __name__ == "__main__":
    cli()
