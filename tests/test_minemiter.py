import io
import json

import pytest
import responses

from netdisco import minilog
from netdisco.minemiter import TemplateRenderer, main, pretty
from netdisco.minigraph import Edge, Endpoint, Network


class RecordingClient:
    def __init__(self):
        self.updated = []

    def update_endpoints(self, *endpoints):
        self.updated.extend(endpoints)
        return list(endpoints)


def _renderer(tmp_path, templates, client=None):
    for name, body in templates.items():
        (tmp_path / name).write_text(body)
    renderer = TemplateRenderer(client)
    renderer.load_templates(tmp_path)
    return renderer


def test_pretty_strips_and_drops_blank_lines():
    assert pretty("  a  \n\n   \n\tb\n") == "a\nb\n"


def test_pretty_empty():
    assert pretty("   \n \n") == ""


def test_load_templates_sorted_names(tmp_path):
    renderer = TemplateRenderer()
    (tmp_path / "B_two.template").write_text("x")
    (tmp_path / "A_one.template").write_text("y")
    (tmp_path / "notes.txt").write_text("z")
    assert renderer.load_templates(tmp_path) == ["A_one.template", "B_two.template"]


def test_load_templates_empty_dir(tmp_path):
    with pytest.raises(ValueError):
        TemplateRenderer().load_templates(tmp_path)


def test_render_node_and_config(tmp_path):
    renderer = _renderer(tmp_path, {"A.template": "{{ Node.nid }} {{ Config.site }}\n"})
    out = renderer.render({"site": "lab"}, [Endpoint(nid=1)])
    assert out == "\n### node 1 ###\n1 lab\n"


def test_groups_run_in_letter_order(tmp_path):
    renderer = _renderer(
        tmp_path,
        {"B.template": "b{{ Node.nid }}", "A.template": "a{{ Node.nid }}"},
    )
    out = renderer.render({}, [Endpoint(nid=1), Endpoint(nid=2)])
    bodies = [line for line in out.split("\n") if line and not line.startswith("###")]
    assert bodies == ["a1", "a2", "b1", "b2"]


def test_lowercase_templates_never_run(tmp_path):
    renderer = _renderer(tmp_path, {"lower.template": "hidden", "A.template": "shown"})
    out = renderer.render({}, [Endpoint(nid=1)])
    assert "hidden" not in out
    assert "shown" in out


def test_once_only_first_node(tmp_path):
    renderer = _renderer(tmp_path, {"A.template": "{% if once() %}first {{ Node.nid }}{% endif %}"})
    out = renderer.render({}, [Endpoint(nid=1), Endpoint(nid=2)])
    assert out.count("first") == 1
    assert "first 1" in out


def test_stop_skips_rest_of_group(tmp_path):
    renderer = _renderer(
        tmp_path,
        {"A1.template": "x{{ stop() }}", "A2.template": "y", "B.template": "z"},
    )
    out = renderer.render({}, [Endpoint(nid=1), Endpoint(nid=2)])
    assert out.count("x") == 2
    assert "y" not in out
    assert out.count("z") == 2


def test_set_and_get_across_templates(tmp_path):
    renderer = _renderer(
        tmp_path,
        {"A1.template": "{{ set('k', Node.nid) }}", "A2.template": "got {{ get('k') }} [{{ get('missing') }}]"},
    )
    out = renderer.render({}, [Endpoint(nid=7)])
    assert "got 7 []" in out
    assert renderer.data["k"] == 7


def test_node_kind_checks(tmp_path):
    renderer = _renderer(
        tmp_path,
        {"A.template": "{% if isEndpoint(Node) %}E{% endif %}{% if isNetwork(Node) %}N{% endif %}"},
    )
    out = renderer.render({}, [Network(nid=1), Endpoint(nid=2)])
    assert out == "\n### node 1 ###\nN\n\n### node 2 ###\nE\n"


def test_set_data_updates_endpoint(tmp_path):
    client = RecordingClient()
    renderer = _renderer(
        tmp_path, {"A.template": "{{ setData(Node, 'color', 'blue') }}"}, client
    )
    endpoint = Endpoint(nid=3, edges=[Edge(n=1)])
    network = Network(nid=1)
    out = renderer.render({}, [network, endpoint])
    assert out == ""
    assert endpoint.data["color"] == "blue"
    assert client.updated == [endpoint]


def test_csv_json_contains(tmp_path):
    renderer = _renderer(
        tmp_path,
        {
            "A.template": (
                "{% for x in csvSlice(Config.list) %}[{{ x }}]{% endfor %}\n"
                "{% set v = jsonUnmarshal(Config.blob) %}{{ v.a }}\n"
                "{% if contains(Config.list, 'b,c') %}yes{% endif %}\n"
            )
        },
    )
    out = renderer.render({"list": "a,b,c", "blob": json.dumps({"a": "q"})}, [Endpoint(nid=1)])
    assert out == "\n### node 1 ###\n[a][b][c]\nq\nyes\n"


def test_json_unmarshal_error(tmp_path):
    renderer = _renderer(tmp_path, {"A.template": "{{ jsonUnmarshal('{bad') }}"})
    with pytest.raises(ValueError):
        renderer.render({}, [Endpoint(nid=1)])


@pytest.fixture
def debug_sink():
    sink = io.StringIO()
    minilog.add_logger("minemiter_test", sink, minilog.Level.DEBUG, False)
    yield sink
    minilog.del_logger("minemiter_test")


def test_debug_function_writes_comment(tmp_path, debug_sink):
    renderer = _renderer(tmp_path, {"A.template": "{{ debug('value %v', 5) }}"})
    out = renderer.render({}, [Endpoint(nid=1)])
    assert out == "\n### node 1 ###\n# debug value 5\n"
    assert "value 5" in debug_sink.getvalue()


def test_fatal_function_exits(tmp_path):
    renderer = _renderer(tmp_path, {"A.template": "{{ fatal('boom') }}"})
    with pytest.raises(SystemExit):
        renderer.render({}, [Endpoint(nid=1)])


def test_main_writes_output(tmp_path):
    templates = tmp_path / "tpl"
    templates.mkdir()
    (templates / "A.template").write_text(
        "{% if isEndpoint(Node) %}host {{ Node.data.hostname }} {{ Config.name }}{% endif %}"
    )
    out = tmp_path / "out.mm"
    base = "http://localhost:8000"
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, f"{base}/config/", json={"name": "lab"})
        rsps.add(
            responses.GET, f"{base}/networks/", json=[{"NID": 1, "Endpoints": [2], "D": {}}]
        )
        rsps.add(
            responses.GET,
            f"{base}/endpoints/",
            json=[{"NID": 2, "Edges": [{"N": 1, "D": {}}], "D": {"hostname": "h"}}],
        )
        try:
            code = main(["--server", "localhost:8000", "--path", str(templates), "-w", str(out)])
        finally:
            minilog.del_logger("stderr")
    assert code == 0
    assert out.read_text() == "\n### node 2 ###\nhost h lab\n"