from grbl_laser.commands import CommandSequence, GcodeCommandBuilder as G


def test_line_vocabulary():
    assert G.laser_on() == "M3"
    assert G.laser_off() == "M5"
    assert G.home() == "$H"
    assert G.travel(1.5, 2) == "G0 X1.500000 Y2.000000"
    assert G.cut(0, -3.25, " S80.000000 F600") == "G1 X0.000000 Y-3.250000 S80.000000 F600"
    assert G.focus(2.5, " S0") == "G0 Z2.500000 S0"


def test_terms():
    assert G.power_term(80) == " S80.000000"
    assert G.feed_term(148.9) == " F148"


def test_split_gcode_list():
    assert G.split_gcode_list("G21, G90 ,,G10 P0 L20 X0") == ["G21", "G90", "G10 P0 L20 X0"]
    assert G.split_gcode_list("") == []
    assert G.split_gcode_list(None) == []


def test_command_sequence_stats():
    seq = CommandSequence("square")
    for line in ["G21", "M5", "G0 X0.000000 Y0.000000 S0 F6000", "G0 Z1.000000", "M3", "G1 X1.000000 Y0.000000"]:
        seq.send(line, phase="job")

    assert seq.stats["total_lines"] == 6
    assert seq.stats["total_bytes"] == sum(len(line) + 1 for line in seq.lines)
    assert seq.stats["travel_moves"] == 1
    assert seq.stats["focus_moves"] == 1
    assert seq.stats["cut_moves"] == 1
    assert seq.stats["laser_on"] == 1
    assert seq.stats["laser_off"] == 1

    data = seq.to_dict()
    assert data["description"] == "square"
    assert data["lines"][0] == "G21"
    assert seq.to_text().endswith("G1 X1.000000 Y0.000000\n")
    assert "Job: square" in seq.summary()


def test_empty_sequence_text():
    assert CommandSequence().to_text() == ""
