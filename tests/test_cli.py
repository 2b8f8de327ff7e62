import pytest

from huff_processor import compress_file, decompress_file, main


def test_compress_then_decompress_default_names(tmp_path):
    src = tmp_path / 'data.bin'
    original = b'the quick brown fox jumps over the lazy dog\n' * 40
    src.write_bytes(original)

    main([str(src)])
    packed = tmp_path / 'data.bin.hf'
    assert packed.exists()
    assert packed.stat().st_size < len(original)

    src.unlink()
    main([str(packed), '--decompress'])
    assert src.read_bytes() == original


def test_explicit_output(tmp_path):
    src = tmp_path / 'in.txt'
    src.write_bytes(b'abc' * 10)
    packed = tmp_path / 'packed'
    restored = tmp_path / 'restored'
    main([str(src), '-o', str(packed), '-dd'])
    main([str(packed), '--decompress', '-o', str(restored)])
    assert restored.read_bytes() == src.read_bytes()


def test_wrong_extension(tmp_path, capsys):
    src = tmp_path / 'plain.txt'
    src.write_bytes(b'x')
    with pytest.raises(SystemExit) as exc_info:
        main([str(src), '--decompress'])
    assert exc_info.value.code == -1
    assert 'Wrong file extension' in capsys.readouterr().err


def test_corrupt_input_leaves_no_output(tmp_path, capsys):
    bad = tmp_path / 'bad.hf'
    bad.write_bytes(b'not a huffman file')
    with pytest.raises(SystemExit) as exc_info:
        main([str(bad), '--decompress'])
    assert exc_info.value.code == -1
    assert 'invalid magic number' in capsys.readouterr().err
    assert not (tmp_path / 'bad').exists()


def test_missing_input(tmp_path, capsys):
    missing = tmp_path / 'missing.bin'
    with pytest.raises(SystemExit) as exc_info:
        main([str(missing)])
    assert exc_info.value.code == -1
    assert capsys.readouterr().err
    assert not (tmp_path / 'missing.bin.hf').exists()


def test_file_helpers_report_bits(tmp_path):
    src = tmp_path / 'src'
    src.write_bytes(b'mississippi')
    packed = tmp_path / 'packed'
    bits = compress_file(str(src), str(packed))
    assert packed.stat().st_size == (bits + 7) // 8
    restored = tmp_path / 'restored'
    assert decompress_file(str(packed), str(restored)) == 8 * len(b'mississippi')
    assert restored.read_bytes() == b'mississippi'
