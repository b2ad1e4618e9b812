import pytest

from cli import main


@pytest.fixture
def write_csv(tmp_path):
    def _write(text, name="transactions.csv"):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return str(path)
    return _write


class TestCli:
    """End-to-end replay of CSV files through the command line entry point."""

    def test_deposits_multi_client(self, write_csv, capsys):
        path = write_csv(
            "type,client,tx,amount\n"
            "deposit,3,1,7.0\n"
            "deposit,1,2,3.0\n"
            "deposit,2,3,10.0\n"
            "deposit,1,4,3.0\n"
            "deposit,3,5,7.0\n"
        )

        assert main([path, "--sort"]) == 0

        assert capsys.readouterr().out == (
            "client,available,held,total,locked\n"
            "1,6.0,0.0,6.0,false\n"
            "2,10.0,0.0,10.0,false\n"
            "3,14.0,0.0,14.0,false\n"
        )

    def test_insufficient_funds_is_not_fatal(self, write_csv, capsys):
        path = write_csv(
            "type, client, tx, amount\n"
            "deposit, 1, 1, 10.0\n"
            "withdrawal, 1, 2, 4.0\n"
            "withdrawal, 1, 3, 100.0\n"
        )

        assert main([path]) == 0

        assert capsys.readouterr().out == (
            "client,available,held,total,locked\n"
            "1,6.0,0.0,6.0,false\n"
        )

    def test_dispute_and_chargeback(self, write_csv, capsys):
        path = write_csv(
            "type,client,tx,amount\n"
            "deposit,157,1,10.0\n"
            "deposit,157,2,5.0\n"
            "dispute,157,2,\n"
            "chargeback,157,2,\n"
            "deposit,157,3,1.0\n"
            "withdrawal,2,4,1.0\n"
        )

        assert main([path, "--sort"]) == 0

        assert capsys.readouterr().out == (
            "client,available,held,total,locked\n"
            "2,0.0,0.0,0.0,false\n"
            "157,10.0,0.0,10.0,true\n"
        )

    def test_malformed_row_aborts_run(self, write_csv, capsys):
        path = write_csv("type,client,tx,amount\ndeposit,1,1,1.0\ndeposit,x,2,1.0\n")

        assert main([path]) == 2
        assert capsys.readouterr().out == ""

    def test_malformed_row_skipped(self, write_csv, capsys):
        path = write_csv("type,client,tx,amount\ndeposit,1,1,1.0\ndeposit,x,2,1.0\ndeposit,1,3,1.5\n")

        assert main([path, "--skip-malformed"]) == 0
        assert capsys.readouterr().out == (
            "client,available,held,total,locked\n"
            "1,2.5,0.0,2.5,false\n"
        )

    def test_missing_file(self, tmp_path, capsys):
        assert main([str(tmp_path / "missing.csv")]) == 1
        assert capsys.readouterr().out == ""

    def test_usage_error(self):
        with pytest.raises(SystemExit) as exc_info:
            main([])

        assert exc_info.value.code == 2

    def test_oversized_amount_is_malformed(self, write_csv, capsys):
        path = write_csv(
            "type,client,tx,amount\n"
            "deposit,1,1,999999999999999999999999\n"
            "deposit,1,2,999999999999999999999999\n"
        )

        assert main([path]) == 2
        assert capsys.readouterr().out == ""

    def test_large_amounts_render_exactly(self, write_csv, capsys):
        path = write_csv(
            "type,client,tx,amount\n"
            "deposit,1,1,1000000000000000\n"
            "deposit,1,2,1000000000000000\n"
            "deposit,1,3,0.0001\n"
        )

        assert main([path]) == 0
        assert capsys.readouterr().out == (
            "client,available,held,total,locked\n"
            "1,2000000000000000.0001,0.0,2000000000000000.0001,false\n"
        )

    def test_byte_order_mark_is_ignored(self, tmp_path, capsys):
        path = tmp_path / "bom.csv"
        path.write_bytes("\ufefftype,client,tx,amount\ndeposit,1,1,2.5\n".encode("utf-8"))

        assert main([str(path)]) == 0
        assert capsys.readouterr().out == (
            "client,available,held,total,locked\n"
            "1,2.5,0.0,2.5,false\n"
        )
