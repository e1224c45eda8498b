"""Tests for the command line front end."""

import argparse

import pytest

import n64cart.__main__ as cli
from conftest import HW2_INFO, FakeTransport
from n64cart.metadata import CicVariant, SaveType
from n64cart.models import CartridgeModel
from n64cart.sixtyfourdrive import SixtyFourDrive


@pytest.fixture
def cart_transport(monkeypatch):
    transport = FakeTransport()
    monkeypatch.setattr(
        cli,
        'open_flashcart',
        lambda serial=None: SixtyFourDrive(transport, CartridgeModel.SIXTYFOURDRIVE_HW2),
    )
    return transport


def test_download_rom_type():
    assert cli.download_rom_type('0x1000') == (0x1000, 'n64dump.z64')
    assert cli.download_rom_type('4096,out.bin') == (4096, 'out.bin')
    with pytest.raises(argparse.ArgumentTypeError):
        cli.download_rom_type('lots')
    with pytest.raises(argparse.ArgumentTypeError):
        cli.download_rom_type('1,2,3')


def test_fix_rom_endianness():
    z64 = bytes([0x80, 0x37, 0x12, 0x40, 0x01, 0x02, 0x03, 0x04])
    v64 = bytes([0x37, 0x80, 0x40, 0x12, 0x02, 0x01, 0x04, 0x03])
    n64 = bytes([0x40, 0x12, 0x37, 0x80, 0x04, 0x03, 0x02, 0x01])
    assert cli.fix_rom_endianness(z64) == z64
    assert cli.fix_rom_endianness(v64) == z64
    assert cli.fix_rom_endianness(n64) == z64


def test_parser_enum_options():
    args = cli.build_parser().parse_args(['--cic', 'x105', '--save-type', 'pokestadium2'])
    assert args.cic == CicVariant.CIC_X105
    assert args.save_type == SaveType.FLASHRAM_1MBIT_STADIUM


def test_parser_accepts_aliases_and_any_case():
    parser = cli.build_parser()
    assert parser.parse_args(['--save-type', 'nothing']).save_type == SaveType.NOTHING
    assert parser.parse_args(['--save-type', 'SRAM256KBIT']).save_type == SaveType.SRAM_256KBIT
    assert parser.parse_args(['--cic', 'AUTO']).cic == CicVariant.AUTO
    assert parser.parse_args(['--cic', 'X105']).cic == CicVariant.CIC_X105


def test_parser_rejects_unknown_choice():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(['--cic', 'unknown'])


def test_resolve_cic_and_save_type_without_rom():
    assert cli.resolve_cic(CicVariant.CIC_6102, None) == (CicVariant.CIC_6102, False)
    assert cli.resolve_cic(None, None) == (CicVariant.AUTO, False)
    assert cli.resolve_save_type(SaveType.SRAM_256KBIT, None, None) == (SaveType.SRAM_256KBIT, False)


def test_resolve_detects_from_rom():
    rom = bytes(0x1000)
    assert cli.resolve_cic(CicVariant.AUTO, rom) == (CicVariant.UNKNOWN, True)
    assert cli.resolve_save_type(None, rom, None) == (SaveType.UNKNOWN, True)
    assert cli.resolve_cic(CicVariant.CIC_7101, rom) == (CicVariant.CIC_7101, False)


def test_main_without_arguments_prints_help(capsys):
    assert cli.main([]) == 0
    assert 'usage' in capsys.readouterr().out


def test_main_lists_flashcarts(monkeypatch, capsys):
    monkeypatch.setattr(cli, 'list_flashcarts', lambda: [(HW2_INFO, CartridgeModel.SIXTYFOURDRIVE_HW2)])
    assert cli.main(['--list']) == 0
    assert 'HW2SERIAL | 64drive HW2' in capsys.readouterr().out


def test_main_uploads_rom_and_sets_metadata(tmp_path, cart_transport, capsys):
    rom = bytes([0x37, 0x80, 0x40, 0x12]) + bytes(0x2000 - 4)
    path = tmp_path / 'game.v64'
    path.write_bytes(rom)

    assert cli.main([str(path), '--save-type', 'eeprom16kbit']) == 0

    loads = cart_transport.commands(0x20)
    assert len(loads) == 1
    assert loads[0][12:16] == bytes([0x80, 0x37, 0x12, 0x40])
    assert cart_transport.commands(0x72) == [b'\x72CMD\x80\x00\x00\x01']
    assert cart_transport.commands(0x70) == [b'\x70CMD\x00\x00\x00\x02']
    assert cart_transport.closed == 1
    out = capsys.readouterr().out
    assert 'CIC set to [unknown] (0x80000001) (autodetected)' in out
    assert 'Save type set to [eeprom16kbit] (0x00000002)' in out


def test_main_backup_save(tmp_path, cart_transport):
    path = tmp_path / 'game.eep'
    assert cli.main(['--save-type', 'eeprom4kbit', '--backup-save', str(path)]) == 0
    assert path.read_bytes() == b'\xA5' * 512


def test_main_save_requires_save_type(tmp_path, cart_transport, capsys):
    path = tmp_path / 'game.sra'
    path.write_bytes(bytes(32 * 1024))
    assert cli.main(['--save', str(path)]) == 1
    assert 'Save type must be provided' in capsys.readouterr().out


def test_main_download_rom(tmp_path, cart_transport):
    path = tmp_path / 'dump.z64'
    assert cli.main(['--download-rom', f'10,{path}']) == 0
    assert path.read_bytes() == b'\xA5' * 12


def test_main_reports_flashcart_errors(monkeypatch, capsys):
    transport = FakeTransport(auto_respond=False)
    monkeypatch.setattr(
        cli,
        'open_flashcart',
        lambda serial=None: SixtyFourDrive(transport, CartridgeModel.SIXTYFOURDRIVE_HW2),
    )
    transport.queue(b'CMP\x00')
    assert cli.main(['--cic', '6102']) == 1
    assert 'Flashcart error' in capsys.readouterr().out
    assert transport.closed == 1
