from pathlib import Path

import pytest

from stheno.errors import InvalidLayout, InvalidMetadata, LayoutCycle, LayoutNotFound
from stheno.site import Site, derive_url


def test_render_through_layout(make_project):
    config = make_project(
        {
            "src/hello.txt": "---\ntitle: Hi\nlayout: base\n---\nHello {{page.title}}",
            "layouts/base.html": "---\n---\nHeader {{content}} Footer",
        }
    )
    site = Site.load(config)
    template = site.templates[config.src_dir / "hello.txt"]
    assert site.render(template) == "Header Hello Hi Footer"


def test_layout_chain_wraps_innermost_first(make_project):
    config = make_project(
        {
            "src/page.html": "---\nlayout: post\n---\nbody",
            "layouts/post.html": "---\nlayout: base\ntitle: Post\n---\n<article>{{content}}</article>",
            "layouts/base.html": "---\n---\n<main>{{content}}|{{layout.title}}</main>",
        }
    )
    site = Site.load(config)
    output = site.render(site.templates[config.src_dir / "page.html"])
    # each layout sees its own metadata as ``layout``
    assert output == "<main><article>body</article>|</main>"


def test_layout_sees_own_metadata(make_project):
    config = make_project(
        {
            "src/page.html": "---\nlayout: base\n---\nx",
            "layouts/base.html": "---\nname: base layout\n---\n{{layout.name}}: {{content}}",
        }
    )
    site = Site.load(config)
    assert site.render(site.templates[config.src_dir / "page.html"]) == "base layout: x"


def test_missing_layout(make_project):
    config = make_project({"src/page.html": "---\nlayout: base\n---\nx"})
    site = Site.load(config)
    with pytest.raises(LayoutNotFound) as excinfo:
        site.render(site.templates[config.src_dir / "page.html"])
    assert excinfo.value.name == "base"
    assert excinfo.value.stage == "layout"
    assert excinfo.value.source_path == config.src_dir / "page.html"


def test_layout_cycle(make_project):
    config = make_project(
        {
            "src/page.html": "---\nlayout: a\n---\nx",
            "layouts/a.html": "---\nlayout: b\n---\n{{content}}",
            "layouts/b.html": "---\nlayout: a\n---\n{{content}}",
        }
    )
    site = Site.load(config)
    with pytest.raises(LayoutCycle) as excinfo:
        site.render(site.templates[config.src_dir / "page.html"])
    assert excinfo.value.chain == ["a", "b", "a"]


def test_self_referencing_layout_is_a_cycle(make_project):
    config = make_project(
        {
            "src/page.html": "---\nlayout: a\n---\nx",
            "layouts/a.html": "---\nlayout: a\n---\n{{content}}",
        }
    )
    site = Site.load(config)
    with pytest.raises(LayoutCycle):
        site.render(site.templates[config.src_dir / "page.html"])


def test_layout_without_front_matter_is_rejected(make_project):
    config = make_project({"layouts/base.html": "{{content}}"})
    with pytest.raises(InvalidLayout) as excinfo:
        Site.load(config)
    assert excinfo.value.source_path == config.layouts_dir / "base.html"


def test_layout_name_must_be_a_string(make_project):
    config = make_project({"src/page.html": "---\nlayout: [a]\n---\nx"})
    site = Site.load(config)
    with pytest.raises(InvalidMetadata):
        site.render(site.templates[config.src_dir / "page.html"])


def test_posts_pages_and_tags(make_project):
    config = make_project(
        {
            "src/about.html": "---\ntitle: About\n---\nabout",
            "src/blog/old.md": "---\ntitle: Old\ndate: 2023-01-01\ntags: [python]\n---\nold",
            "src/blog/new.md": "---\ntitle: New\ndate: 2024-05-01\ntags: [python, web]\n---\nnew",
            "src/style.css": "body {}",
        }
    )
    site = Site.load(config)
    assert [p.metadata["title"] for p in site.posts] == ["New", "Old"]
    assert [p.metadata["title"] for p in site.pages] == ["About"]
    assert [p.metadata["title"] for p in site.tags["python"]] == ["New", "Old"]
    assert [p.metadata["title"] for p in site.tags["web"]] == ["New"]
    assert config.src_dir / "style.css" not in site.templates


def test_drafts_excluded_in_production(make_project):
    config = make_project(
        {
            "src/blog/draft.md": "---\ntitle: Draft\ndate: 2024-01-01\ndraft: true\n---\nx",
            "src/blog/live.md": "---\ntitle: Live\ndate: 2024-01-02\n---\nx",
        }
    )
    site = Site.load(config)
    assert [p.metadata["title"] for p in site.posts] == ["Live"]
    assert site.is_excluded(site.templates[config.src_dir / "blog" / "draft.md"])


def test_drafts_included_when_enabled(make_project):
    config = make_project(
        {"src/blog/draft.md": "---\ntitle: Draft\ndate: 2024-01-01\ndraft: true\n---\nx"},
        include_drafts=True,
    )
    site = Site.load(config)
    assert [p.metadata["title"] for p in site.posts] == ["Draft"]
    assert not site.is_excluded(site.posts[0])


def test_url_is_derived_unless_set(make_project):
    config = make_project(
        {
            "src/blog/hello.md": "---\n---\nx",
            "src/blog/index.html": "---\n---\nx",
            "src/custom.html": "---\nurl: /elsewhere\n---\nx",
        }
    )
    site = Site.load(config)
    src = config.src_dir
    assert site.templates[src / "blog" / "hello.md"].metadata["url"] == "/blog/hello"
    assert site.templates[src / "blog" / "index.html"].metadata["url"] == "/blog/"
    assert site.templates[src / "custom.html"].metadata["url"] == "/elsewhere"


def test_derive_url():
    assert derive_url(Path("index.html")) == "/"
    assert derive_url(Path("feed.xml")) == "/feed.xml"


def test_hidden_files_are_skipped(make_project):
    config = make_project(
        {
            "src/.secret.html": "---\n---\nx",
            "src/.git/config.html": "---\n---\nx",
            "src/visible.html": "---\n---\nx",
        }
    )
    site = Site.load(config)
    assert list(site.templates) == [config.src_dir / "visible.html"]


def test_context_exposes_posts_config_and_data(make_project):
    config = make_project(
        {
            "config.yml": "title: My Site\n",
            "data/authors.yml": "- name: Ada\n",
            "src/index.html": (
                "---\n---\n{{config.title}}|{{data.authors[0].name}}|"
                "{% for post in posts %}{{post.title}}@{{post.url}} {% endfor %}|"
                "{{tags.misc|length}}"
            ),
            "src/blog/one.md": "---\ntitle: One\ndate: 2024-01-01\ntags: [misc]\n---\nx",
        }
    )
    site = Site.load(config)
    output = site.render(site.templates[config.src_dir / "index.html"])
    assert output == "My Site|Ada|One@/blog/one |1"


def test_page_date_is_available_to_templates(make_project):
    config = make_project(
        {"src/post.html": "---\ndate: 2024-03-09\n---\n{{page.date|date_to_string}}"}
    )
    site = Site.load(config)
    assert site.render(site.templates[config.src_dir / "post.html"]) == "09 Mar 2024"


def test_base_context_is_built_once_per_load(monkeypatch, make_project):
    config = make_project(
        {
            "src/a.html": "---\n---\n{{posts|length}}",
            "src/b.html": "---\n---\n{{posts|length}}",
            "src/blog/one.md": "---\ndate: 2024-01-01\n---\nx",
        }
    )
    site = Site.load(config)

    def fail():
        raise AssertionError("context rebuilt during render")

    monkeypatch.setattr(site, "base_context", fail)
    for name in ("a.html", "b.html"):
        assert site.render(site.templates[config.src_dir / name]) == "1"
    assert "page" not in site.context


def test_url_is_added_without_mutating_the_parsed_template(make_project):
    config = make_project({"src/blog/hello.md": "---\ntitle: Hello\n---\nx"})
    site = Site.load(config)
    template = site.templates[config.src_dir / "blog" / "hello.md"]
    assert template.metadata == {"title": "Hello", "url": "/blog/hello"}

    moved = template.with_metadata(url="/elsewhere")
    assert moved.metadata["url"] == "/elsewhere"
    assert moved.body is template.body
    assert template.metadata["url"] == "/blog/hello"
