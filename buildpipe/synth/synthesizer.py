"""Project synthesis: Swift sources in, ``project.pbxproj`` text out."""

from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from buildpipe.core.errors import DescriptorIntegrityError, NoSourceFilesError
from buildpipe.domain.models import ProjectDescriptorSpec, SourceFile, WidgetTargetSpec
from buildpipe.synth import templates
from buildpipe.synth.naming import normalize_source_files, sanitize_development_team
from buildpipe.synth.pbxproj import ProjectGraph, Ref, parse_references
from buildpipe.synth.rules import (
    detect_live_activity_type,
    detect_privacy_permissions,
    select_deployment_baseline,
)

logger = logging.getLogger(__name__)

WIDGET_PREFIX = templates.WIDGET_DIR + "/"
SHARED_LIVE_ACTIVITY_PREFIX = "LiveActivity/"
_MANAGER_RE = re.compile(r"Manager\.swift$", re.IGNORECASE)

_BUILD_ACTION_MASK = 2147483647
_EMBED_APP_EXTENSIONS_SUBFOLDER = 13


@dataclass
class SynthesisResult:
    descriptor_text: str
    included_paths: List[str]
    privacy_permissions: Dict[str, str]
    files: Dict[str, str]
    spec: ProjectDescriptorSpec
    app_source_paths: List[str] = field(default_factory=list)
    target_names: List[str] = field(default_factory=list)

    @property
    def widget_target(self) -> Optional[WidgetTargetSpec]:
        return self.spec.widget_target

    @property
    def deployment_baseline(self) -> str:
        return self.spec.deployment_baseline


def _file_type(path: str) -> str:
    if path.endswith(".swift"):
        return "sourcecode.swift"
    if path.endswith(".plist"):
        return "text.plist.xml"
    return "text"


def _unique(paths: Sequence[str]) -> List[str]:
    return list(dict.fromkeys(paths))


# ---------------------------------------------------------------------------
# build settings
# ---------------------------------------------------------------------------


def _project_settings(debug: bool, baseline: str) -> Dict[str, object]:
    common: Dict[str, object] = {
        "ALWAYS_SEARCH_USER_PATHS": "NO",
        "ASSETCATALOG_COMPILER_GENERATE_SWIFT_ASSET_SYMBOL_EXTENSIONS": "YES",
        "CLANG_ANALYZER_NONNULL": "YES",
        "CLANG_ENABLE_MODULES": "YES",
        "CLANG_ENABLE_OBJC_ARC": "YES",
        "COPY_PHASE_STRIP": "NO",
        "ENABLE_STRICT_OBJC_MSGSEND": "YES",
        "IPHONEOS_DEPLOYMENT_TARGET": baseline,
        "MTL_FAST_MATH": "YES",
        "SDKROOT": "iphoneos",
    }
    if debug:
        common.update({
            "DEBUG_INFORMATION_FORMAT": "dwarf",
            "ENABLE_TESTABILITY": "YES",
            "GCC_DYNAMIC_NO_PIC": "NO",
            "GCC_OPTIMIZATION_LEVEL": 0,
            "GCC_PREPROCESSOR_DEFINITIONS": ["DEBUG=1", "$(inherited)"],
            "MTL_ENABLE_DEBUG_INFO": "INCLUDE_SOURCE",
            "ONLY_ACTIVE_ARCH": "YES",
            "SWIFT_ACTIVE_COMPILATION_CONDITIONS": "DEBUG",
            "SWIFT_OPTIMIZATION_LEVEL": "-Onone",
        })
    else:
        common.update({
            "DEBUG_INFORMATION_FORMAT": "dwarf-with-dsym",
            "ENABLE_NS_ASSERTIONS": "NO",
            "GCC_OPTIMIZATION_LEVEL": "s",
            "MTL_ENABLE_DEBUG_INFO": "NO",
            "SWIFT_COMPILATION_MODE": "wholemodule",
            "VALIDATE_PRODUCT": "YES",
        })
    return dict(sorted(common.items()))


def _app_settings(spec: ProjectDescriptorSpec, team: str) -> Dict[str, object]:
    values: Dict[str, object] = {
        "ASSETCATALOG_COMPILER_APPICON_NAME": "AppIcon",
        "ASSETCATALOG_COMPILER_GLOBAL_ACCENT_COLOR_NAME": "AccentColor",
        "CODE_SIGN_STYLE": "Automatic",
        "CURRENT_PROJECT_VERSION": 1,
        "DEVELOPMENT_ASSET_PATHS": "",
        "ENABLE_PREVIEWS": "YES",
        "GENERATE_INFOPLIST_FILE": "YES",
        "INFOPLIST_KEY_UIApplicationSupportsIndirectInputEvents": "YES",
        "INFOPLIST_KEY_UILaunchScreen_Generation": "YES",
        "INFOPLIST_KEY_UISupportedInterfaceOrientations_iPad": (
            "UIInterfaceOrientationPortrait UIInterfaceOrientationPortraitUpsideDown "
            "UIInterfaceOrientationLandscapeLeft UIInterfaceOrientationLandscapeRight"
        ),
        "INFOPLIST_KEY_UISupportedInterfaceOrientations_iPhone": (
            "UIInterfaceOrientationPortrait UIInterfaceOrientationLandscapeLeft "
            "UIInterfaceOrientationLandscapeRight"
        ),
        "IPHONEOS_DEPLOYMENT_TARGET": spec.deployment_baseline,
        "LD_RUNPATH_SEARCH_PATHS": ["$(inherited)", "@executable_path/Frameworks"],
        "MARKETING_VERSION": "1.0",
        "PRODUCT_BUNDLE_IDENTIFIER": spec.bundle_id,
        "PRODUCT_NAME": "$(TARGET_NAME)",
        "SDKROOT": "iphoneos",
        "SWIFT_EMIT_LOC_STRINGS": "YES",
        "SWIFT_VERSION": "5.0",
        "TARGETED_DEVICE_FAMILY": "1,2",
    }
    if team:
        values["DEVELOPMENT_TEAM"] = team
    if spec.widget_target is not None:
        values["INFOPLIST_KEY_NSSupportsLiveActivities"] = "YES"
    for key, description in spec.privacy_permissions.items():
        values[f"INFOPLIST_KEY_{key}"] = description
    return dict(sorted(values.items()))


def _widget_settings(spec: ProjectDescriptorSpec, widget: WidgetTargetSpec, team: str) -> Dict[str, object]:
    values: Dict[str, object] = {
        "CODE_SIGN_STYLE": "Automatic",
        "CURRENT_PROJECT_VERSION": 1,
        "GENERATE_INFOPLIST_FILE": "NO",
        # resolved relative to the project root, sources live under <project>/
        "INFOPLIST_FILE": f"{spec.project_name}/{widget.manifest_path}",
        "IPHONEOS_DEPLOYMENT_TARGET": spec.deployment_baseline,
        "LD_RUNPATH_SEARCH_PATHS": ["$(inherited)", "@executable_path/Frameworks"],
        "MARKETING_VERSION": "1.0",
        "PRODUCT_BUNDLE_IDENTIFIER": widget.bundle_id,
        "PRODUCT_NAME": "$(TARGET_NAME)",
        "SDKROOT": "iphoneos",
        "SKIP_INSTALL": "YES",
        "SWIFT_VERSION": "5.0",
        "TARGETED_DEVICE_FAMILY": "1,2",
    }
    if team:
        values["DEVELOPMENT_TEAM"] = team
    return dict(sorted(values.items()))


# ---------------------------------------------------------------------------
# graph assembly
# ---------------------------------------------------------------------------


def _phase(graph: ProjectGraph, isa: str, name: str, files: List[Ref], **extra: object) -> Ref:
    fields: Dict[str, object] = {"buildActionMask": _BUILD_ACTION_MASK}
    fields.update(extra)
    fields["files"] = files
    fields["runOnlyForDeploymentPostprocessing"] = 0
    return graph.add(isa, fields, comment=name)


def _configuration_list(graph: ProjectGraph, owner: str, debug: Dict[str, object], release: Dict[str, object]) -> Ref:
    debug_ref = graph.add("XCBuildConfiguration", {"buildSettings": debug, "name": "Debug"}, comment="Debug")
    release_ref = graph.add("XCBuildConfiguration", {"buildSettings": release, "name": "Release"}, comment="Release")
    return graph.add(
        "XCConfigurationList",
        {
            "buildConfigurations": [debug_ref, release_ref],
            "defaultConfigurationIsVisible": 0,
            "defaultConfigurationName": "Release",
        },
        comment=f"Build configuration list for {owner}",
    )


def build_project_graph(
    spec: ProjectDescriptorSpec,
    included_paths: Sequence[str],
    app_sources: Sequence[str],
    *,
    id_factory: Optional[Callable[[], str]] = None,
) -> ProjectGraph:
    graph = ProjectGraph(id_factory)
    name = spec.project_name
    widget = spec.widget_target
    team = sanitize_development_team(spec.development_team)

    file_refs: Dict[str, Ref] = {}
    for path in included_paths:
        file_refs[path] = graph.add(
            "PBXFileReference",
            {"lastKnownFileType": _file_type(path), "path": path, "sourceTree": "<group>"},
            comment=posixpath.basename(path),
            inline=True,
        )

    def build_files(paths: Sequence[str], label: str) -> List[Ref]:
        refs = []
        for path in paths:
            base = posixpath.basename(path)
            refs.append(graph.add(
                "PBXBuildFile",
                {"fileRef": file_refs[path]},
                comment=f"{base} in {label}",
                inline=True,
            ))
        return refs

    app_build_files = build_files(app_sources, "Sources")

    app_product = graph.add(
        "PBXFileReference",
        {
            "explicitFileType": "wrapper.application",
            "includeInIndex": 0,
            "path": f"{name}.app",
            "sourceTree": "BUILT_PRODUCTS_DIR",
        },
        comment=f"{name}.app",
        inline=True,
    )

    project_ref = graph.reserve("Project object")
    products: List[Ref] = [app_product]
    targets: List[Ref] = []
    app_phases: List[Ref] = [
        _phase(graph, "PBXSourcesBuildPhase", "Sources", app_build_files),
        _phase(graph, "PBXFrameworksBuildPhase", "Frameworks", []),
        _phase(graph, "PBXResourcesBuildPhase", "Resources", []),
    ]
    app_dependencies: List[Ref] = []
    widget_target_ref: Optional[Ref] = None

    if widget is not None:
        widget_sources = [p for p in widget.source_paths if p.endswith(".swift")]
        widget_build_files = build_files(widget_sources, "Sources (Widget)")
        widget_product = graph.add(
            "PBXFileReference",
            {
                "explicitFileType": "wrapper.app-extension",
                "includeInIndex": 0,
                "path": f"{widget.name}.appex",
                "sourceTree": "BUILT_PRODUCTS_DIR",
            },
            comment=f"{widget.name}.appex",
            inline=True,
        )
        products.append(widget_product)
        embed_file = graph.add(
            "PBXBuildFile",
            {"fileRef": widget_product, "settings": {"ATTRIBUTES": ["RemoveHeadersOnCopy"]}},
            comment=f"{widget.name}.appex in Embed App Extensions",
            inline=True,
        )
        app_phases.append(_phase(
            graph,
            "PBXCopyFilesBuildPhase",
            "Embed App Extensions",
            [embed_file],
            dstPath="",
            dstSubfolderSpec=_EMBED_APP_EXTENSIONS_SUBFOLDER,
            name="Embed App Extensions",
        ))
        widget_config_list = _configuration_list(
            graph,
            f'PBXNativeTarget "{widget.name}"',
            _widget_settings(spec, widget, team),
            _widget_settings(spec, widget, team),
        )
        widget_target_ref = graph.reserve(widget.name)
        graph.add(
            "PBXNativeTarget",
            {
                "buildConfigurationList": widget_config_list,
                "buildPhases": [
                    _phase(graph, "PBXSourcesBuildPhase", "Sources", widget_build_files),
                    _phase(graph, "PBXFrameworksBuildPhase", "Frameworks", []),
                    _phase(graph, "PBXResourcesBuildPhase", "Resources", []),
                ],
                "buildRules": [],
                "dependencies": [],
                "name": widget.name,
                "productName": widget.name,
                "productReference": widget_product,
                "productType": "com.apple.product-type.app-extension",
            },
            comment=widget.name,
            object_id=widget_target_ref.id,
        )
        proxy = graph.add(
            "PBXContainerItemProxy",
            {
                "containerPortal": project_ref,
                "proxyType": 1,
                "remoteGlobalIDString": widget_target_ref.id,
                "remoteInfo": widget.name,
            },
            comment="PBXContainerItemProxy",
        )
        app_dependencies.append(graph.add(
            "PBXTargetDependency",
            {"target": widget_target_ref, "targetProxy": proxy},
            comment="PBXTargetDependency",
        ))

    app_config_list = _configuration_list(
        graph,
        f'PBXNativeTarget "{name}"',
        _app_settings(spec, team),
        _app_settings(spec, team),
    )
    targets.append(graph.add(
        "PBXNativeTarget",
        {
            "buildConfigurationList": app_config_list,
            "buildPhases": app_phases,
            "buildRules": [],
            "dependencies": app_dependencies,
            "name": name,
            "productName": name,
            "productReference": app_product,
            "productType": "com.apple.product-type.application",
        },
        comment=name,
    ))
    if widget_target_ref is not None:
        targets.append(widget_target_ref)

    sources_group = graph.add(
        "PBXGroup",
        {"children": [file_refs[p] for p in included_paths], "path": name, "sourceTree": "<group>"},
        comment=name,
    )
    products_group = graph.add(
        "PBXGroup",
        {"children": products, "name": "Products", "sourceTree": "<group>"},
        comment="Products",
    )
    main_group = graph.add("PBXGroup", {"children": [sources_group, products_group], "sourceTree": "<group>"})

    project_config_list = _configuration_list(
        graph,
        f'PBXProject "{name}"',
        _project_settings(True, spec.deployment_baseline),
        _project_settings(False, spec.deployment_baseline),
    )
    graph.add(
        "PBXProject",
        {
            "attributes": {
                "BuildIndependentTargetsInParallel": 1,
                "LastSwiftUpdateCheck": 1500,
                "LastUpgradeCheck": 1500,
            },
            "buildConfigurationList": project_config_list,
            "compatibilityVersion": "Xcode 14.0",
            "developmentRegion": "en",
            "hasScannedForEncodings": 0,
            "knownRegions": ["en", "Base"],
            "mainGroup": main_group,
            "productRefGroup": products_group,
            "projectDirPath": "",
            "projectRoot": "",
            "targets": targets,
        },
        comment="Project object",
        object_id=project_ref.id,
    )
    graph.root = project_ref
    return graph


# ---------------------------------------------------------------------------
# entry point
# ---------------------------------------------------------------------------


def _resolve_widget(
    spec: ProjectDescriptorSpec,
    app_paths: List[str],
    widget_paths: List[str],
) -> Optional[WidgetTargetSpec]:
    if spec.widget_target is not None:
        return spec.widget_target
    if not widget_paths:
        return None
    shared = [p for p in app_paths if p.startswith(SHARED_LIVE_ACTIVITY_PREFIX) and not _MANAGER_RE.search(p)]
    return WidgetTargetSpec(
        name=f"{spec.project_name}Widget",
        # embedded extensions must be prefixed with the host app's bundle id
        bundle_id=f"{spec.bundle_id}.widget",
        source_paths=_unique([*widget_paths, *shared]),
        manifest_path=templates.WIDGET_MANIFEST_PATH,
    )


def synthesize(
    files: Sequence[SourceFile],
    spec: ProjectDescriptorSpec,
    *,
    id_factory: Optional[Callable[[], str]] = None,
) -> SynthesisResult:
    sources: Dict[str, str] = {}
    for f in normalize_source_files(files):
        if f.path.endswith(".swift"):
            sources[f.path] = f.content or ""
    if not sources:
        raise NoSourceFilesError()

    paths = list(sources)
    widget_paths = [p for p in paths if p.startswith(WIDGET_PREFIX)]
    app_paths = [p for p in paths if not p.startswith(WIDGET_PREFIX)]

    combined = "\n".join(sources.values())
    if not widget_paths and spec.widget_target is None:
        attributes_type = detect_live_activity_type(combined)
        if attributes_type:
            logger.info("Live Activity type %s has no widget target; synthesizing one", attributes_type)
            sources[templates.WIDGET_BUNDLE_PATH] = templates.WIDGET_BUNDLE_SWIFT
            sources[templates.WIDGET_VIEW_PATH] = templates.widget_view_swift(attributes_type)
            widget_paths = [templates.WIDGET_BUNDLE_PATH, templates.WIDGET_VIEW_PATH]
            paths = list(sources)

    widget = _resolve_widget(spec, app_paths, widget_paths)
    all_files: Dict[str, str] = dict(sources)
    if widget is not None:
        missing = [p for p in widget.source_paths if p not in sources]
        if missing:
            raise DescriptorIntegrityError(f"widget target lists unknown sources: {', '.join(missing)}")
        if widget.manifest_path not in all_files:
            all_files[widget.manifest_path] = templates.WIDGET_INFO_PLIST
        # shared LiveActivity sources compile into both targets
        widget_only = {p for p in widget.source_paths if not p.startswith(SHARED_LIVE_ACTIVITY_PREFIX)}
        app_paths = [p for p in paths if p not in widget_only and not p.startswith(WIDGET_PREFIX)]

    included_paths = list(all_files)
    privacy = detect_privacy_permissions("\n".join(sources.values()))
    privacy.update(spec.privacy_permissions)

    resolved = spec.model_copy(update={
        "deployment_baseline": select_deployment_baseline(combined),
        "privacy_permissions": dict(sorted(privacy.items())),
        "widget_target": widget,
    })

    graph = build_project_graph(resolved, included_paths, app_paths, id_factory=id_factory)
    text = graph.serialize()

    parsed = parse_references(text)
    if parsed.dangling_ids or set(parsed.file_paths) != set(included_paths):
        raise DescriptorIntegrityError(
            f"descriptor mismatch: dangling={sorted(parsed.dangling_ids)} "
            f"paths={sorted(set(parsed.file_paths) ^ set(included_paths))}"
        )

    return SynthesisResult(
        descriptor_text=text,
        included_paths=included_paths,
        privacy_permissions=resolved.privacy_permissions,
        files=all_files,
        spec=resolved,
        app_source_paths=app_paths,
        target_names=parsed.target_names,
    )


def spec_for_request(project_name: str, bundle_id: str, development_team: Optional[str] = None) -> ProjectDescriptorSpec:
    """Descriptor inputs from already-sanitized request fields."""
    return ProjectDescriptorSpec(
        project_name=project_name,
        bundle_id=bundle_id,
        development_team=development_team,
    )
