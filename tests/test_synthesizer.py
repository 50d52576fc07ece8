"""Tests for project descriptor synthesis.

Covers:
- ProjectGraph: validation and serialization
- parse_references: reading declared ids / paths / targets back
- synthesize: partitioning, widget target, augmentation,
  baseline and privacy settings, round-trip
"""

import pytest

from buildpipe.core.errors import DescriptorIntegrityError, NoSourceFilesError
from buildpipe.domain.models import ProjectDescriptorSpec, SourceFile
from buildpipe.synth import templates
from buildpipe.synth.pbxproj import ProjectGraph, Ref, parse_references, quote
from buildpipe.synth.synthesizer import synthesize
from tests.conftest import APP_SWIFT, sequential_ids


def _spec(**overrides) -> ProjectDescriptorSpec:
    data = {"project_name": "Todo", "bundle_id": "com.example.todo"}
    data.update(overrides)
    return ProjectDescriptorSpec(**data)


# ═══════════════════════════════════════════════════════════════════════════
# ProjectGraph
# ═══════════════════════════════════════════════════════════════════════════


class TestProjectGraph:
    def test_dangling_reference_rejected(self):
        graph = ProjectGraph(sequential_ids())
        root = graph.add("PBXGroup", {"children": [Ref("DEADBEEFDEADBEEFDEADBEEF")]})
        graph.root = root
        with pytest.raises(DescriptorIntegrityError):
            graph.serialize()

    def test_missing_root_rejected(self):
        graph = ProjectGraph(sequential_ids())
        graph.add("PBXGroup", {"children": []})
        with pytest.raises(DescriptorIntegrityError):
            graph.validate()

    def test_reserved_id_resolves_once_added(self):
        graph = ProjectGraph(sequential_ids())
        project = graph.reserve("Project object")
        group = graph.add("PBXGroup", {"children": [], "owner": project})
        graph.add("PBXProject", {"mainGroup": group}, object_id=project.id)
        graph.root = project
        graph.validate()
        assert graph.dangling_refs() == set()

    def test_serialize_sections_and_root(self):
        graph = ProjectGraph(sequential_ids())
        ref = graph.add("PBXFileReference", {"path": "A.swift", "sourceTree": "<group>"}, comment="A.swift", inline=True)
        group = graph.add("PBXGroup", {"children": [ref]})
        graph.root = graph.add("PBXProject", {"mainGroup": group}, comment="Project object")
        text = graph.serialize()
        assert text.startswith("// !$*UTF8*$!")
        assert "/* Begin PBXFileReference section */" in text
        assert text.index("PBXFileReference section") < text.index("PBXGroup section") < text.index("PBXProject section")
        assert f"rootObject = {graph.root.id} /* Project object */;" in text

    def test_quote(self):
        assert quote("App.swift") == "App.swift"
        assert quote("<group>") == '"<group>"'
        assert quote("") == '""'
        assert quote('say "hi"') == '"say \\"hi\\""'


# ═══════════════════════════════════════════════════════════════════════════
# synthesize
# ═══════════════════════════════════════════════════════════════════════════


class TestSynthesizeBasic:
    def test_todo_end_to_end(self, todo_files):
        result = synthesize(todo_files, _spec())
        parsed = parse_references(result.descriptor_text)

        assert parsed.target_names == ["Todo"]
        assert parsed.file_paths == ["App.swift"]
        assert parsed.product_paths == ["Todo.app"]
        assert parsed.dangling_ids == set()
        assert parsed.root_id in parsed.declared_ids
        assert result.widget_target is None
        assert result.included_paths == ["App.swift"]
        assert result.deployment_baseline == "17.0"

    def test_no_swift_sources(self):
        files = [SourceFile(path="README.md", content="# hi")]
        with pytest.raises(NoSourceFilesError):
            synthesize(files, _spec())

    def test_empty_file_set(self):
        with pytest.raises(NoSourceFilesError):
            synthesize([], _spec())

    def test_non_swift_files_are_ignored(self, todo_files):
        files = todo_files + [SourceFile(path="notes.txt", content="x")]
        result = synthesize(files, _spec())
        assert result.included_paths == ["App.swift"]
        assert "notes.txt" not in result.descriptor_text

    def test_round_trip_recovers_all_paths(self):
        files = [
            SourceFile(path="App.swift", content=APP_SWIFT),
            SourceFile(path="Views/ContentView.swift", content="struct ContentView {}"),
            SourceFile(path="Models/Item Model.swift", content="struct Item {}"),
        ]
        result = synthesize(files, _spec())
        parsed = parse_references(result.descriptor_text)
        assert sorted(parsed.file_paths) == sorted(f.path for f in files)
        assert parsed.dangling_ids == set()

    def test_every_object_declared_once(self, todo_files):
        result = synthesize(todo_files, _spec(), id_factory=sequential_ids())
        parsed = parse_references(result.descriptor_text)
        assert len(parsed.declared_ids) == len(parsed.isa_by_id)
        assert parsed.referenced_ids >= parsed.declared_ids

    def test_deterministic_with_fixed_ids(self, todo_files):
        a = synthesize(todo_files, _spec(), id_factory=sequential_ids())
        b = synthesize(todo_files, _spec(), id_factory=sequential_ids())
        assert a.descriptor_text == b.descriptor_text

    def test_two_configurations_per_list(self, todo_files):
        result = synthesize(todo_files, _spec())
        parsed = parse_references(result.descriptor_text)
        isas = list(parsed.isa_by_id.values())
        # project + app target
        assert isas.count("XCConfigurationList") == 2
        assert isas.count("XCBuildConfiguration") == 4

    def test_development_team(self, todo_files):
        result = synthesize(todo_files, _spec(development_team="ab12cd"))
        assert "DEVELOPMENT_TEAM = AB12CD;" in result.descriptor_text

    def test_no_team_setting_when_absent(self, todo_files):
        result = synthesize(todo_files, _spec())
        assert "DEVELOPMENT_TEAM" not in result.descriptor_text


class TestSynthesizeSettings:
    def test_glass_effect_baseline(self):
        files = [SourceFile(path="App.swift", content='Text("x").glassEffect()')]
        result = synthesize(files, _spec())
        assert result.deployment_baseline == "26.0"
        assert "IPHONEOS_DEPLOYMENT_TARGET = 26.0;" in result.descriptor_text
        assert "IPHONEOS_DEPLOYMENT_TARGET = 17.0;" not in result.descriptor_text

    def test_privacy_keys_written(self):
        files = [SourceFile(path="Camera.swift", content="let s = AVCaptureSession()")]
        result = synthesize(files, _spec())
        assert result.privacy_permissions == {
            "NSCameraUsageDescription": "This app uses the camera for its features."
        }
        assert (
            'INFOPLIST_KEY_NSCameraUsageDescription = "This app uses the camera for its features.";'
            in result.descriptor_text
        )

    def test_explicit_privacy_description_wins(self):
        files = [SourceFile(path="Camera.swift", content="let s = AVCaptureSession()")]
        spec = _spec(privacy_permissions={"NSCameraUsageDescription": "Scan receipts."})
        result = synthesize(files, spec)
        assert result.privacy_permissions["NSCameraUsageDescription"] == "Scan receipts."


class TestWidgetTarget:
    FILES = [
        SourceFile(path="App.swift", content=APP_SWIFT),
        SourceFile(path="WidgetExtension/DeliveryWidget.swift", content="struct DeliveryWidget {}"),
        SourceFile(path="LiveActivity/DeliveryAttributes.swift", content="struct DeliveryAttributes {}"),
        SourceFile(path="LiveActivity/DeliveryManager.swift", content="final class DeliveryManager {}"),
    ]

    def test_widget_target_added(self):
        result = synthesize(self.FILES, _spec())
        parsed = parse_references(result.descriptor_text)
        widget = result.widget_target

        assert widget is not None
        assert widget.name == "TodoWidget"
        assert widget.bundle_id == "com.example.todo.widget"
        assert widget.manifest_path == "WidgetExtension/Info.plist"
        assert parsed.target_names == ["TodoWidget", "Todo"] or parsed.target_names == ["Todo", "TodoWidget"]
        assert "TodoWidget.appex" in parsed.product_paths
        assert parsed.dangling_ids == set()

    def test_widget_sources_include_shared_live_activity(self):
        widget = synthesize(self.FILES, _spec()).widget_target
        assert widget.source_paths == [
            "WidgetExtension/DeliveryWidget.swift",
            "LiveActivity/DeliveryAttributes.swift",
        ]

    def test_app_target_keeps_shared_sources(self):
        result = synthesize(self.FILES, _spec())
        assert result.app_source_paths == [
            "App.swift",
            "LiveActivity/DeliveryAttributes.swift",
            "LiveActivity/DeliveryManager.swift",
        ]

    def test_manifest_is_included(self):
        result = synthesize(self.FILES, _spec())
        parsed = parse_references(result.descriptor_text)
        assert "WidgetExtension/Info.plist" in result.included_paths
        assert "WidgetExtension/Info.plist" in parsed.file_paths
        assert result.files["WidgetExtension/Info.plist"] == templates.WIDGET_INFO_PLIST

    def test_embed_phase_and_settings(self):
        text = synthesize(self.FILES, _spec()).descriptor_text
        assert "Embed App Extensions" in text
        assert "dstSubfolderSpec = 13;" in text
        assert "com.apple.product-type.app-extension" in text
        assert "INFOPLIST_FILE = Todo/WidgetExtension/Info.plist;" in text
        assert "INFOPLIST_KEY_NSSupportsLiveActivities = YES;" in text
        assert "SKIP_INSTALL = YES;" in text

    def test_round_trip(self):
        result = synthesize(self.FILES, _spec())
        parsed = parse_references(result.descriptor_text)
        expected = {f.path for f in self.FILES} | {"WidgetExtension/Info.plist"}
        assert set(parsed.file_paths) == expected


class TestLiveActivityAugmentation:
    ATTRIBUTES = """import ActivityKit

struct DeliveryAttributes: ActivityAttributes {
    struct ContentState: Codable, Hashable { var eta: Int }
}
"""

    def test_synthesizes_widget_for_attributes(self):
        files = [
            SourceFile(path="App.swift", content=APP_SWIFT),
            SourceFile(path="Models/DeliveryAttributes.swift", content=self.ATTRIBUTES),
        ]
        result = synthesize(files, _spec())

        assert templates.WIDGET_BUNDLE_PATH in result.included_paths
        assert templates.WIDGET_VIEW_PATH in result.included_paths
        assert templates.WIDGET_MANIFEST_PATH in result.included_paths
        assert "DeliveryAttributes.self" in result.files[templates.WIDGET_VIEW_PATH]
        assert result.widget_target is not None
        parsed = parse_references(result.descriptor_text)
        assert set(parsed.file_paths) == set(result.included_paths)

    def test_existing_widget_files_are_not_augmented(self):
        files = [
            SourceFile(path="App.swift", content=self.ATTRIBUTES),
            SourceFile(path="WidgetExtension/Mine.swift", content="struct Mine {}"),
        ]
        result = synthesize(files, _spec())
        assert templates.WIDGET_VIEW_PATH not in result.included_paths
        assert result.widget_target.source_paths == ["WidgetExtension/Mine.swift"]

    def test_no_attributes_no_widget(self, todo_files):
        assert synthesize(todo_files, _spec()).widget_target is None
