"""Tests for source packaging."""
import os
import zipfile

import pytest

from skylambda import packaging


@pytest.fixture
def packager():
    packager = packaging.Packager()
    yield packager
    packager.cleanup()


def test_size_of_directory(packager, tmp_path):
    (tmp_path / 'a.py').write_bytes(b'x' * 10)
    (tmp_path / 'pkg').mkdir()
    (tmp_path / 'pkg' / 'b.py').write_bytes(b'y' * 5)
    assert packager.size(str(tmp_path)) == 15


def test_size_without_source(packager):
    assert packager.size(None) == 0


def test_expand_copies_directory(packager, source_dir):
    expanded = packager.expand(source_dir)
    assert expanded != source_dir
    assert os.listdir(expanded) == ['app.py']


def test_expand_extracts_zip(packager, tmp_path):
    archive = tmp_path / 'code.zip'
    with zipfile.ZipFile(archive, 'w') as f:
        f.writestr('lib/app.py', 'def main(e, c): pass\n')
    expanded = packager.expand(str(archive))
    assert os.path.isfile(os.path.join(expanded, 'lib', 'app.py'))


def test_expand_without_source_is_empty(packager):
    assert os.listdir(packager.expand(None)) == []


def test_expand_rejects_other_files(packager, tmp_path):
    path = tmp_path / 'app.py'
    path.write_text('print(1)\n')
    with pytest.raises(ValueError):
        packager.expand(str(path))


def test_inject_shim(packager, source_dir):
    expanded = packager.expand(source_dir)
    handler = packager.inject_shim(expanded, 'app.main')

    assert handler == '_skylambda_shim.handler'
    with open(os.path.join(expanded, '_skylambda_shim.py')) as f:
        shim = f.read()
    assert "import_module('app')" in shim
    assert "'main')" in shim
    compile(shim, '_skylambda_shim.py', 'exec')


def test_inject_shim_nested_module(packager, source_dir):
    expanded = packager.expand(source_dir)
    packager.inject_shim(expanded, 'pkg.jobs.run')
    with open(os.path.join(expanded, '_skylambda_shim.py')) as f:
        assert "import_module('pkg.jobs')" in f.read()


@pytest.mark.parametrize('handler', ['main', '.main', 'app.', ''])
def test_inject_shim_rejects_bad_handlers(packager, source_dir, handler):
    with pytest.raises(ValueError):
        packager.inject_shim(packager.expand(source_dir), handler)


def test_compress_and_cleanup(source_dir):
    packager = packaging.Packager()
    expanded = packager.expand(source_dir)
    archive = packager.compress(expanded)

    with zipfile.ZipFile(archive) as f:
        assert f.namelist() == ['app.py']

    packager.cleanup()
    assert not os.path.exists(archive)
    assert not os.path.exists(expanded)


def test_default_source_exists():
    assert os.path.isfile(os.path.join(packaging.DEFAULT_SRC_DIR, 'handler.py'))
