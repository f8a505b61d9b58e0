#!/usr/bin/env python3
"""
Replay script for the multimodal emotion fusion engine.

Feeds a recorded stream of face and voice estimates through a
FusionOrchestrator, in file order, and writes every fused record that would
have been delivered to subscribers.

Input format (JSON lines, one record per line):
    {"modality": "face", "timestamp": 1000, "arousal": 0.5, "valence": 0.3,
     "faceEmotions": {"happy": 0.7}, "confidence": 0.8}
    {"modality": "voice", "timestamp": 1050, "prosody": {"arousal": 0.3, ...},
     "voiceEmotions": {...}, "confidence": 0.8}
    {"modality": "face", "timestamp": 1100, "missing": true}

Usage:
    python main.py --input session.jsonl --output fused.jsonl
    python main.py --input session.jsonl --strategy ai-learned --log-level DEBUG
"""

import argparse
import json
import logging
from pathlib import Path
import sys
from typing import Dict, Optional

from emotion_fusion import (
    FaceEmotionData,
    FusionConfig,
    FusionOrchestrator,
    VoiceEmotionData,
)
from emotion_fusion.enums import Modality
from emotion_fusion.exceptions import FusionError
from utils.config_loader import load_config

logger = logging.getLogger(__name__)


def configure_logging(level: str = 'INFO', log_file: str = 'emotion_fusion.log'):
    """Log to stdout and to a file."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )


def run_replay(input_path: str, config: FusionConfig, output_path: Optional[str] = None) -> Dict:
    """
    Replay a recorded modality stream through the fusion engine.

    Args:
        input_path: JSON-lines file of face/voice records
        config: Fusion configuration
        output_path: JSON-lines file for fused records (skipped if None)

    Returns:
        Summary with record counts and final metrics
    """
    orchestrator = FusionOrchestrator(config)
    fused_records = []
    orchestrator.on_fused_emotion(fused_records.append)
    orchestrator.on_conflict_detected(
        lambda c: logger.info(
            f"Conflict on {c.conflict_dimensions} "
            f"(severity={c.conflict_severity:.2f}, resolution={c.resolution_strategy.value})"
        )
    )

    records_read = 0
    skipped = 0

    with open(input_path, 'r') as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue

            try:
                record = json.loads(line)
                modality = Modality(record.pop('modality'))
            except (json.JSONDecodeError, KeyError, ValueError) as e:
                logger.warning(f"Line {line_no}: skipping unreadable record ({e})")
                skipped += 1
                continue

            records_read += 1

            try:
                if record.get('missing'):
                    if modality is Modality.FACE:
                        orchestrator.mark_face_missing(float(record['timestamp']))
                    else:
                        orchestrator.mark_voice_missing(float(record['timestamp']))
                elif modality is Modality.FACE:
                    orchestrator.add_face_data(FaceEmotionData.from_dict(record))
                else:
                    orchestrator.add_voice_data(VoiceEmotionData.from_dict(record))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Line {line_no}: malformed {modality.value} record ({e})")
                skipped += 1

    if output_path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w') as f:
            for fused in fused_records:
                f.write(json.dumps(fused.to_dict(), default=str) + '\n')
        logger.info(f"Wrote {len(fused_records)} fused records to {output_path}")

    metrics = orchestrator.get_metrics()
    learned = orchestrator.export_learned_patterns()

    logger.info("=" * 60)
    logger.info("REPLAY SUMMARY")
    logger.info(f"  Records read: {records_read} (skipped {skipped})")
    logger.info(f"  Fusions: {metrics.successful_fusions}/{metrics.total_fusions} successful")
    logger.info(f"  Avg confidence: {metrics.average_confidence:.2f}")
    logger.info(f"  Avg quality: {metrics.average_quality:.2f}")
    logger.info(f"  Conflict rate: {metrics.conflict_rate:.2f}")
    logger.info(f"  Modality preference: {metrics.modality_preference.value}")
    if learned:
        logger.info(f"  Learned patterns: {learned}")
    logger.info("=" * 60)

    orchestrator.destroy()

    return {
        'records_read': records_read,
        'skipped': skipped,
        'fused': fused_records,
        'metrics': metrics,
        'learned_patterns': learned,
    }


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Multimodal emotion fusion - replay a recorded face/voice stream',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Default configuration
  python main.py --input session.jsonl --output fused.jsonl

  # Override the fusion strategy
  python main.py --input session.jsonl --strategy confidence-based
        """
    )

    parser.add_argument(
        '--input',
        type=str,
        required=True,
        help='Path to JSON-lines file of face/voice records'
    )

    parser.add_argument(
        '--config',
        type=str,
        default='configs/fusion.yaml',
        help='Path to configuration YAML file (default: configs/fusion.yaml)'
    )

    parser.add_argument(
        '--output',
        type=str,
        default=None,
        help='Path for fused JSON-lines output (default: none)'
    )

    parser.add_argument(
        '--strategy',
        type=str,
        default=None,
        help='Fusion strategy override (weighted-average, confidence-based, ai-learned)'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        default='INFO',
        help='Logging level (default: INFO)'
    )

    args = parser.parse_args()

    configure_logging(args.log_level)

    input_path = Path(args.input)
    if not input_path.exists():
        logger.error(f"Input file not found: {input_path}")
        sys.exit(1)

    config_path = Path(args.config)
    if not config_path.exists():
        logger.error(f"Config file not found: {config_path}")
        sys.exit(1)

    try:
        config = FusionConfig.from_dict(load_config(config_path))
        if args.strategy:
            config = config.merged({'strategy': args.strategy})

        run_replay(str(input_path), config, args.output)
        sys.exit(0)

    except FusionError as e:
        logger.error(f"Invalid fusion configuration: {e}")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.warning("Replay interrupted by user")
        sys.exit(1)


if __name__ == '__main__':
    main()
