"""텍스트 점수, 탐지 병합, 클레임 점수에서 공유하는 단어 목록."""

# 영어 불용어 + 분실/습득 신고마다 반복되는 단어
STOP_WORDS = frozenset([
    'a', 'an', 'the', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for',
    'of', 'with', 'by', 'from', 'as', 'is', 'was', 'are', 'were', 'been',
    'be', 'have', 'has', 'had', 'do', 'does', 'did', 'will', 'would', 'could',
    'should', 'may', 'might', 'must', 'shall', 'can', 'need', 'dare', 'ought',
    'used', 'i', 'me', 'my', 'myself', 'we', 'our', 'ours', 'ourselves',
    'you', 'your', 'yours', 'yourself', 'yourselves', 'he', 'him', 'his',
    'himself', 'she', 'her', 'hers', 'herself', 'it', 'its', 'itself',
    'they', 'them', 'their', 'theirs', 'themselves', 'what', 'which', 'who',
    'whom', 'this', 'that', 'these', 'those', 'am', 'being', 'having', 'doing',
    'just', 'very', 'also', 'only', 'own', 'same', 'so', 'than', 'too',
    'now', 'here', 'there', 'when', 'where', 'why', 'how', 'all', 'each',
    'few', 'more', 'most', 'other', 'some', 'such', 'no', 'nor', 'not', 'any',
    'both', 'into', 'through', 'during', 'before', 'after', 'above', 'below',
    'between', 'under', 'again', 'further', 'then', 'once', 'up', 'down',
    'out', 'off', 'over',
    'lost', 'found', 'item', 'please', 'help', 'looking', 'find',
])

# 아이템 임베딩 캐시용 코퍼스 없는 IDF
DISTINCTIVE_TERMS = frozenset(['serial', 'brand', 'model', 'scratch', 'sticker', 'custom'])
COMMON_TERMS = frozenset(['black', 'blue', 'red', 'white', 'small', 'large', 'new', 'old'])
DISTINCTIVE_IDF = 2.5
COMMON_IDF = 1.0
DEFAULT_IDF = 1.5

# detector 라벨 동의어: 대표 키 -> 멤버
LABEL_SYNONYMS = {
    'phone': ['mobile_phone', 'smartphone', 'cellphone'],
    'laptop': ['notebook', 'computer'],
    'bag': ['handbag', 'backpack', 'suitcase', 'luggage'],
    'monitor': ['screen', 'display', 'tv'],
}

# 기본 색 -> 계열 색 ("navy"는 blue 계열)
COLOR_FAMILIES = {
    'blue': ['navy', 'azure', 'cyan', 'teal', 'dark blue', 'light blue', 'sky blue', 'royal blue'],
    'red': ['maroon', 'crimson', 'scarlet', 'burgundy', 'dark red', 'wine'],
    'green': ['olive', 'lime', 'emerald', 'forest', 'dark green', 'light green', 'mint'],
    'black': ['dark', 'charcoal', 'ebony', 'jet'],
    'white': ['cream', 'ivory', 'off-white', 'pearl', 'beige'],
    'brown': ['tan', 'chocolate', 'coffee', 'mocha', 'khaki', 'caramel'],
    'gray': ['grey', 'silver', 'slate', 'charcoal', 'ash'],
    'pink': ['rose', 'salmon', 'fuchsia', 'magenta', 'coral'],
    'purple': ['violet', 'lavender', 'plum', 'mauve', 'indigo'],
    'orange': ['coral', 'peach', 'tangerine', 'amber'],
    'yellow': ['gold', 'golden', 'lemon', 'mustard', 'cream'],
}

# 실제 소유자만 알 법한 내용을 가리키는 증빙 표현
STRONG_PROOF_KEYWORDS = [
    'serial', 'receipt', 'photo', 'scratch', 'sticker', 'custom', 'engraved',
    'purchase', 'bought', 'gift', 'unique', 'marking', 'damage', 'dent',
    'inscription', 'initials', 'name', 'label', 'tag', 'case', 'cover',
]

# 업로드 사진 증빙으로 인정하는 호스트
MEDIA_HOSTS = ['cloudinary', 'firebasestorage', 'storage.googleapis.com', 'image']
