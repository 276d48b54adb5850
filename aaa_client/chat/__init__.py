"""Streamed chat responses: line assembly, trigger extraction and segmentation."""

from aaa_client.chat.lines import ChunkLineAssembler
from aaa_client.chat.scanner import ScanResult, scan_json_prefix
from aaa_client.chat.segmenter import ParsedSegment, StreamSegmenter, TextSegment, TriggerSegment
from aaa_client.chat.triggers import ApprovalTrigger, LeaveTrigger, TriggerRouter

__all__ = [
    "ApprovalTrigger",
    "ChunkLineAssembler",
    "LeaveTrigger",
    "ParsedSegment",
    "ScanResult",
    "StreamSegmenter",
    "TextSegment",
    "TriggerRouter",
    "TriggerSegment",
    "scan_json_prefix",
]
