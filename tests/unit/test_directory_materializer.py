from p2e.BUILDERS.directory_materializer import DirectoryMaterializer


def test_ancestors_first():
    emitted = []
    materializer = DirectoryMaterializer(emitted.append)
    materializer.ensure_directory("lib/foo/bar")
    assert emitted == ["lib", "lib/foo", "lib/foo/bar"]


def test_each_directory_once():
    emitted = []
    materializer = DirectoryMaterializer(emitted.append)
    materializer.ensure_directory("lib/foo")
    materializer.ensure_directory("lib/foo")
    materializer.ensure_directory("lib/baz")
    materializer.ensure_directory("lib")
    assert emitted == ["lib", "lib/foo", "lib/baz"]


def test_virtual_root_not_emitted():
    emitted = []
    materializer = DirectoryMaterializer(emitted.append)
    materializer.ensure_directory("")
    materializer.ensure_directory(".")
    assert emitted == []
    assert materializer.created == set()
