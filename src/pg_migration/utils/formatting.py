"""크기/시간 표시 포맷"""

KB = 1024
MB = KB * 1024
GB = MB * 1024


def format_size(num_bytes: int) -> str:
    """바이트 수를 B/KB/MB/GB 단위 문자열로 변환 (소수점 1자리)"""
    if num_bytes >= GB:
        return f"{num_bytes / GB:.1f}GB"
    if num_bytes >= MB:
        return f"{num_bytes / MB:.1f}MB"
    if num_bytes >= KB:
        return f"{num_bytes / KB:.1f}KB"
    return f"{num_bytes}B"


def format_duration(seconds: float) -> str:
    """초 단위 시간을 '1h 2m 3s' 형태로 변환"""
    total = int(seconds)
    if total >= 3600:
        return f"{total // 3600}h {total % 3600 // 60}m {total % 60}s"
    if total >= 60:
        return f"{total // 60}m {total % 60}s"
    return f"{total}s"
