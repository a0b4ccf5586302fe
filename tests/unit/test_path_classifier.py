import os
import pytest
from p2e.errors import ManifestLocationError
from p2e.LAYOUT.installation import InstallationLayout
from p2e.LAYOUT.path_classifier import PathClassifier, relative_to_root


@pytest.fixture
def dirs(tmp_path):
    root = tmp_path / "python"
    app = tmp_path / "app"
    site = tmp_path / "site"
    for d in (root, app, site):
        d.mkdir()
    return root, app, site


@pytest.fixture
def classifier(dirs):
    root, app, _ = dirs
    return PathClassifier(str(root), str(app), "Lib/site-packages")


def test_relative_to_root(tmp_path):
    root = str(tmp_path / "py")
    assert relative_to_root(os.path.join(root, "Lib", "os.py"), root) == "Lib/os.py"
    assert relative_to_root(str(tmp_path / "python" / "x.py"), root) is None
    assert relative_to_root(root, root) is None


def test_installation_root_rule(dirs, classifier):
    root, _, _ = dirs
    source = str(root / "Lib" / "json" / "decoder.py")
    assert classifier.classify(source, "json/decoder.py") == "Lib/json/decoder.py"


def test_script_directory_rule(dirs, classifier):
    _, app, _ = dirs
    assert classifier.classify(str(app / "helpers" / "util.py"), "helpers/util.py") == "src/helpers/util.py"


def test_installation_root_wins_over_script_directory(tmp_path):
    root = tmp_path / "python"
    classifier = PathClassifier(str(root), str(root / "Scripts"), "Lib/site-packages")
    assert classifier.classify(str(root / "Scripts" / "tool.py")) == "Scripts/tool.py"


def test_site_library_fallback_uses_referenced_name(dirs, classifier):
    _, _, site = dirs
    source = str(site / "vendor" / "foo" / "bar.py")
    assert classifier.classify(source, "foo/bar.py") == "Lib/site-packages/foo/bar.py"


def test_no_destination(dirs, classifier):
    _, _, site = dirs
    source = str(site / "foo.py")
    assert classifier.classify(source) is None
    assert classifier.classify(source, source) is None
    assert classifier.classify(source, "../foo.py") is None


def test_classification_is_repeatable(dirs, classifier):
    root, _, site = dirs
    for source, name in ((str(root / "Lib" / "os.py"), "os.py"), (str(site / "six.py"), "six.py")):
        assert classifier.classify(source, name) == classifier.classify(source, name)


def test_manifest_inside_installation(dirs, classifier):
    root, _, _ = dirs
    path = str(root / "Lib" / "site-packages" / "click-8.1.7.dist-info" / "METADATA")
    assert classifier.classify_manifest(path) == "Lib/site-packages/click-8.1.7.dist-info/METADATA"


def test_manifest_outside_installation(dirs, classifier):
    _, app, _ = dirs
    with pytest.raises(ManifestLocationError) as excinfo:
        classifier.classify_manifest(str(app / "pkg-1.0.dist-info" / "METADATA"))
    assert "Don't know where to put it" in str(excinfo.value)


def test_for_script(dirs):
    root, app, _ = dirs
    layout = InstallationLayout(
        root=str(root),
        site_lib="lib/python3.12/site-packages",
        bin_dir=str(root / "bin"),
        executable="python3",
        windowed_executable="python3",
    )
    classifier = PathClassifier.for_script(layout, str(app / "main.py"))
    assert classifier.classify(str(app / "main.py")) == "src/main.py"
    assert classifier.site_lib == "lib/python3.12/site-packages"
