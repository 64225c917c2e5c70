from mindtheatre.infra.migrate import _sorted_migration_paths, render_migration


def test_migration_substitutes_embedding_dimension_and_strips_comments():
    sql = "-- header\nCREATE TABLE t (v vector({{EMBEDDING_DIM}}));\n/* note */\nSELECT 1;"
    assert render_migration(sql, 768) == ["CREATE TABLE t (v vector(768))", "SELECT 1"]


def test_bundled_migration_defines_hnsw_cosine_index():
    paths = _sorted_migration_paths()
    assert [path.name for path in paths][0] == "0001_init.sql"

    statements = render_migration(paths[0].read_text(encoding="utf-8"), 1536)
    joined = "\n".join(statements)
    assert "vector(1536)" in joined
    assert "USING hnsw (embedding vector_cosine_ops)" in joined
    assert "{{EMBEDDING_DIM}}" not in joined
