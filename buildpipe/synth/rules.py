"""Source-scanning rule tables used by the synthesizer."""

from __future__ import annotations

import re
from typing import Dict, List, NamedTuple, Optional

from buildpipe.core.matching import PatternRule, all_matches, rule


class PrivacyPermission(NamedTuple):
    key: str
    description: str


PRIVACY_RULES: List[PatternRule[PrivacyPermission]] = [
    rule(
        PrivacyPermission("NSCameraUsageDescription", "This app uses the camera for its features."),
        r"\bAVCaptureSession\b", r"\bAVCaptureDevice\b", r"\.camera\b", r"\bCaptureSession\b",
    ),
    rule(
        PrivacyPermission("NSMicrophoneUsageDescription", "This app uses the microphone for audio input."),
        r"\bAVAudioSession\b", r"\bAVAudioRecorder\b", r"\bAVAudioEngine\b", r"\.microphone\b",
    ),
    rule(
        PrivacyPermission("NSPhotoLibraryUsageDescription", "This app accesses your photo library."),
        r"\bPHPhotoLibrary\b", r"\bPHPickerViewController\b", r"\bUIImagePickerController\b",
        r"\bPHPickerConfiguration\b",
    ),
    rule(
        PrivacyPermission("NSLocationWhenInUseUsageDescription", "This app uses your location while in use."),
        r"\bCLLocationManager\b", r"\bCoreLocation\b", r"\blocationManager\b",
    ),
    rule(
        PrivacyPermission("NSContactsUsageDescription", "This app accesses your contacts."),
        r"\bCNContactStore\b", r"\bimport Contacts\b",
    ),
    rule(
        PrivacyPermission("NSCalendarsUsageDescription", "This app accesses your calendar."),
        r"\bEKEventStore\b", r"\bimport EventKit\b",
    ),
    rule(
        PrivacyPermission("NSHealthShareUsageDescription", "This app reads your health data."),
        r"\bHKHealthStore\b", r"\bimport HealthKit\b",
    ),
    rule(
        PrivacyPermission("NSFaceIDUsageDescription", "This app uses Face ID for authentication."),
        r"\bLAContext\b", r"\bbiometricType\b", r"\bFaceID\b",
    ),
    rule(
        PrivacyPermission("NSSpeechRecognitionUsageDescription", "This app uses speech recognition."),
        r"\bSFSpeechRecognizer\b", r"\bimport Speech\b",
    ),
    rule(
        PrivacyPermission("NSBluetoothAlwaysUsageDescription", "This app uses Bluetooth."),
        r"\bCBCentralManager\b", r"\bCBPeripheralManager\b", r"\bimport CoreBluetooth\b",
    ),
    rule(
        PrivacyPermission("NSMotionUsageDescription", "This app uses motion and fitness data."),
        r"\bCMMotionManager\b", r"\bimport CoreMotion\b",
    ),
    rule(
        PrivacyPermission("NFCReaderUsageDescription", "This app uses NFC."),
        r"\bNFCTagReaderSession\b", r"\bimport CoreNFC\b",
    ),
]

DEFAULT_BASELINE = "17.0"
NEW_UI_BASELINE = "26.0"

# Liquid Glass APIs only exist on the newer SDK
BASELINE_RULES: List[PatternRule[str]] = [
    rule(NEW_UI_BASELINE, r"\.glassEffect\(", r"\.glassEffectID\(", r"\bGlassEffectContainer\b"),
]

LIVE_ACTIVITY_ATTRIBUTES_RE = re.compile(r"\bstruct\s+([A-Za-z_][A-Za-z0-9_]*)\s*:\s*ActivityAttributes\b")


def detect_privacy_permissions(source_text: str) -> Dict[str, str]:
    found: Dict[str, str] = {}
    for r in all_matches(PRIVACY_RULES, source_text):
        found.setdefault(r.effect.key, r.effect.description)
    return found


def select_deployment_baseline(source_text: str) -> str:
    for r in BASELINE_RULES:
        if r.matches(source_text):
            return r.effect
    return DEFAULT_BASELINE


def detect_live_activity_type(source_text: str) -> Optional[str]:
    m = LIVE_ACTIVITY_ATTRIBUTES_RE.search(source_text)
    return m.group(1) if m else None
