from __future__ import annotations

WIDGET_DIR = "WidgetExtension"
WIDGET_BUNDLE_PATH = f"{WIDGET_DIR}/WidgetBundle.swift"
WIDGET_VIEW_PATH = f"{WIDGET_DIR}/LiveActivityWidget.swift"
WIDGET_MANIFEST_PATH = f"{WIDGET_DIR}/Info.plist"

WIDGET_BUNDLE_SWIFT = """import WidgetKit
import SwiftUI

@main
struct WidgetExtensionBundle: WidgetBundle {
  var body: some Widget {
    AppLiveActivityWidget()
  }
}
"""

_WIDGET_VIEW_SWIFT = """import ActivityKit
import WidgetKit
import SwiftUI

struct AppLiveActivityWidget: Widget {
  var body: some WidgetConfiguration {
    ActivityConfiguration(for: __ATTRIBUTES__.self) { _ in
      VStack(alignment: .leading, spacing: 8) {
        Text("Live Activity")
          .font(.headline)
        Text("In progress")
          .font(.subheadline)
          .foregroundStyle(.secondary)
      }
      .padding()
    } dynamicIsland: { _ in
      DynamicIsland {
        DynamicIslandExpandedRegion(.center) {
          Text("Live Activity")
            .font(.headline)
        }
      } compactLeading: {
        Text("LA")
      } compactTrailing: {
        Text("•")
      } minimal: {
        Text("LA")
      }
    }
  }
}
"""

WIDGET_INFO_PLIST = """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
  <key>NSExtension</key>
  <dict>
    <key>NSExtensionPointIdentifier</key>
    <string>com.apple.widgetkit-extension</string>
    <key>NSExtensionPrincipalClass</key>
    <string>$(PRODUCT_MODULE_NAME).WidgetExtension</string>
  </dict>
</dict>
</plist>
"""


def widget_view_swift(attributes_type: str) -> str:
    return _WIDGET_VIEW_SWIFT.replace("__ATTRIBUTES__", attributes_type)
