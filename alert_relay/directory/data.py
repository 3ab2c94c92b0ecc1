"""
Static location table: oblasts, Kyiv city and raions keyed by alerts.in.ua UID.

Rows are ``(uid, display_name, short_name, kind, parent_uid)``. Loaded once
by LocationDirectory; nothing mutates it at runtime.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

LocationRow = Tuple[str, str, str, str, Optional[str]]

LOCATION_ROWS: List[LocationRow] = [
    # Oblasts and Kyiv city
    ("3", "Хмельницька область", "Хмельницький", "subdivision", None),
    ("4", "Вінницька область", "Вінниця обл.", "subdivision", None),
    ("5", "Рівненська область", "Рівне обл.", "subdivision", None),
    ("8", "Волинська область", "Волинь обл.", "subdivision", None),
    ("9", "Дніпропетровська область", "Дніпро обл.", "subdivision", None),
    ("10", "Житомирська область", "Житомир обл.", "subdivision", None),
    ("11", "Закарпатська область", "Закарпаття", "subdivision", None),
    ("12", "Запорізька область", "Запоріжжя обл.", "subdivision", None),
    ("13", "Івано-Франківська область", "Ів-Франківськ", "subdivision", None),
    ("14", "Київська область", "Київ обл.", "subdivision", None),
    ("15", "Кіровоградська область", "Кропивницький", "subdivision", None),
    ("16", "Луганська область", "Луганськ обл.", "subdivision", None),
    ("17", "Миколаївська область", "Миколаїв обл.", "subdivision", None),
    ("18", "Одеська область", "Одеса обл.", "subdivision", None),
    ("19", "Полтавська область", "Полтава обл.", "subdivision", None),
    ("20", "Сумська область", "Суми обл.", "subdivision", None),
    ("21", "Тернопільська область", "Тернопіль обл.", "subdivision", None),
    ("22", "Харківська область", "Харків обл.", "subdivision", None),
    ("23", "Херсонська область", "Херсон обл.", "subdivision", None),
    ("24", "Черкаська область", "Черкаси обл.", "subdivision", None),
    ("25", "Чернігівська область", "Чернігів обл.", "subdivision", None),
    ("26", "Чернівецька область", "Чернівці обл.", "subdivision", None),
    ("27", "Львівська область", "Львів обл.", "subdivision", None),
    ("28", "Донецька область", "Донецьк обл.", "subdivision", None),
    ("31", "м. Київ", "Київ", "subdivision", None),  # city with special status

    # Raions
    # Хмельницька (3)
    ("134", "Хмельницький район", "Хмельницький р-н", "district", "3"),
    ("135", "Кам'янець-Подільський район", "Кам'янець р-н", "district", "3"),
    ("136", "Шепетівський район", "Шепетівка р-н", "district", "3"),

    # Вінницька (4)
    ("32", "Тульчинський район", "Тульчин р-н", "district", "4"),
    ("33", "Могилів-Подільський район", "Могилів-Под. р-н", "district", "4"),
    ("34", "Хмільницький район", "Хмільник р-н", "district", "4"),
    ("35", "Жмеринський район", "Жмеринка р-н", "district", "4"),
    ("36", "Вінницький район", "Вінниця р-н", "district", "4"),
    ("37", "Гайсинський район", "Гайсин р-н", "district", "4"),

    # Рівненська (5)
    ("110", "Вараський район", "Вараш р-н", "district", "5"),
    ("111", "Дубенський район", "Дубно р-н", "district", "5"),
    ("112", "Рівненський район", "Рівне р-н", "district", "5"),
    ("113", "Сарненський район", "Сарни р-н", "district", "5"),

    # Волинська (8)
    ("38", "Володимир-Волинський район", "Володимир р-н", "district", "8"),
    ("39", "Луцький район", "Луцьк р-н", "district", "8"),
    ("40", "Ковельський район", "Ковель р-н", "district", "8"),
    ("41", "Камінь-Каширський район", "Камінь-Каш. р-н", "district", "8"),

    # Дніпропетровська (9)
    ("42", "Кам'янський район", "Кам'янське р-н", "district", "9"),
    ("43", "Новомосковський район", "Новомосковськ р-н", "district", "9"),
    ("44", "Дніпровський район", "Дніпро р-н", "district", "9"),
    ("45", "Павлоградський район", "Павлоград р-н", "district", "9"),
    ("46", "Криворізький район", "Кривий Ріг р-н", "district", "9"),
    ("47", "Нікопольський район", "Нікополь р-н", "district", "9"),
    ("48", "Синельниківський район", "Синельникове р-н", "district", "9"),

    # Житомирська (10)
    ("57", "Бердичівський район", "Бердичів р-н", "district", "10"),
    ("58", "Коростенський район", "Коростень р-н", "district", "10"),
    ("59", "Житомирський район", "Житомир р-н", "district", "10"),
    ("60", "Звягельський район", "Звягель р-н", "district", "10"),

    # Закарпатська (11)
    ("61", "Берегівський район", "Берегово р-н", "district", "11"),
    ("62", "Хустський район", "Хуст р-н", "district", "11"),
    ("63", "Рахівський район", "Рахів р-н", "district", "11"),
    ("64", "Тячівський район", "Тячів р-н", "district", "11"),
    ("65", "Мукачівський район", "Мукачево р-н", "district", "11"),
    ("66", "Ужгородський район", "Ужгород р-н", "district", "11"),

    # Запорізька (12)
    ("145", "Пологівський район", "Пологи р-н", "district", "12"),
    ("146", "Василівський район", "Василівка р-н", "district", "12"),
    ("147", "Бердянський район", "Бердянськ р-н", "district", "12"),
    ("148", "Мелітопольський район", "Мелітополь р-н", "district", "12"),
    ("149", "Запорізький район", "Запоріжжя р-н", "district", "12"),

    # Івано-Франківська (13)
    ("67", "Верховинський район", "Верховина р-н", "district", "13"),
    ("68", "Івано-Франківський район", "Ів-Франк. р-н", "district", "13"),
    ("69", "Косівський район", "Косів р-н", "district", "13"),
    ("70", "Коломийський район", "Коломия р-н", "district", "13"),
    ("71", "Калуський район", "Калуш р-н", "district", "13"),
    ("72", "Надвірнянський район", "Надвірна р-н", "district", "13"),

    # Київська (14)
    ("73", "Білоцерківський район", "Біла Церква р-н", "district", "14"),
    ("74", "Вишгородський район", "Вишгород р-н", "district", "14"),
    ("75", "Бучанський район", "Буча р-н", "district", "14"),
    ("76", "Обухівський район", "Обухів р-н", "district", "14"),
    ("77", "Фастівський район", "Фастів р-н", "district", "14"),
    ("78", "Бориспільський район", "Бориспіль р-н", "district", "14"),
    ("79", "Броварський район", "Бровари р-н", "district", "14"),

    # Кіровоградська (15)
    ("80", "Олександрійський район", "Олександрія р-н", "district", "15"),
    ("81", "Кропивницький район", "Кропивницький р-н", "district", "15"),
    ("82", "Голованівський район", "Голованівськ р-н", "district", "15"),
    ("83", "Новоукраїнський район", "Новоукраїнка р-н", "district", "15"),

    # Миколаївська (17)
    ("95", "Вознесенський район", "Вознесенськ р-н", "district", "17"),
    ("96", "Баштанський район", "Баштанка р-н", "district", "17"),
    ("97", "Первомайський район", "Первомайськ р-н", "district", "17"),
    ("98", "Миколаївський район", "Миколаїв р-н", "district", "17"),

    # Одеська (18)
    ("99", "Подільський район", "Подільськ р-н", "district", "18"),
    ("100", "Березівський район", "Березівка р-н", "district", "18"),
    ("101", "Ізмаїльський район", "Ізмаїл р-н", "district", "18"),
    ("102", "Білгород-Дністровський район", "Білгород-Дн. р-н", "district", "18"),
    ("103", "Роздільнянський район", "Роздільна р-н", "district", "18"),
    ("104", "Одеський район", "Одеса р-н", "district", "18"),
    ("105", "Болградський район", "Болград р-н", "district", "18"),

    # Полтавська (19)
    ("106", "Лубенський район", "Лубни р-н", "district", "19"),
    ("107", "Кременчуцький район", "Кременчук р-н", "district", "19"),
    ("108", "Миргородський район", "Миргород р-н", "district", "19"),
    ("109", "Полтавський район", "Полтава р-н", "district", "19"),

    # Сумська (20)
    ("114", "Сумський район", "Суми р-н", "district", "20"),
    ("115", "Шосткинський район", "Шостка р-н", "district", "20"),
    ("116", "Роменський район", "Ромни р-н", "district", "20"),
    ("117", "Конотопський район", "Конотоп р-н", "district", "20"),
    ("118", "Охтирський район", "Охтирка р-н", "district", "20"),

    # Тернопільська (21)
    ("119", "Тернопільський район", "Тернопіль р-н", "district", "21"),
    ("120", "Кременецький район", "Кременець р-н", "district", "21"),
    ("121", "Чортківський район", "Чортків р-н", "district", "21"),

    # Харківська (22)
    ("122", "Чугуївський район", "Чугуїв р-н", "district", "22"),
    ("123", "Куп'янський район", "Куп'янськ р-н", "district", "22"),
    ("124", "Харківський район", "Харків р-н", "district", "22"),
    ("125", "Ізюмський район", "Ізюм р-н", "district", "22"),
    ("126", "Богодухівський район", "Богодухів р-н", "district", "22"),
    ("127", "Красноградський район", "Красноград р-н", "district", "22"),
    ("128", "Лозівський район", "Лозова р-н", "district", "22"),

    # Херсонська (23)
    ("129", "Бериславський район", "Берислав р-н", "district", "23"),
    ("130", "Скадовський район", "Скадовськ р-н", "district", "23"),
    ("131", "Каховський район", "Каховка р-н", "district", "23"),
    ("132", "Херсонський район", "Херсон р-н", "district", "23"),
    ("133", "Генічеський район", "Генічеськ р-н", "district", "23"),

    # Черкаська (24)
    ("150", "Звенигородський район", "Звенигородка р-н", "district", "24"),
    ("151", "Уманський район", "Умань р-н", "district", "24"),
    ("152", "Черкаський район", "Черкаси р-н", "district", "24"),
    ("153", "Золотоніський район", "Золотоноша р-н", "district", "24"),

    # Чернігівська (25)
    ("140", "Чернігівський район", "Чернігів р-н", "district", "25"),
    ("141", "Новгород-Сіверський район", "Н-Сіверський р-н", "district", "25"),
    ("142", "Ніжинський район", "Ніжин р-н", "district", "25"),
    ("143", "Прилуцький район", "Прилуки р-н", "district", "25"),
    ("144", "Корюківський район", "Корюківка р-н", "district", "25"),

    # Чернівецька (26)
    ("137", "Чернівецький район", "Чернівці р-н", "district", "26"),
    ("138", "Вижницький район", "Вижниця р-н", "district", "26"),
    ("139", "Дністровський район", "Дністровськ р-н", "district", "26"),

    # Львівська (27)
    ("88", "Самбірський район", "Самбір р-н", "district", "27"),
    ("89", "Стрийський район", "Стрий р-н", "district", "27"),
    ("90", "Львівський район", "Львів р-н", "district", "27"),
    ("91", "Дрогобицький район", "Дрогобич р-н", "district", "27"),
    ("92", "Червоноградський район", "Червоноград р-н", "district", "27"),
    ("93", "Яворівський район", "Яворів р-н", "district", "27"),
    ("94", "Золочівський район", "Золочів р-н", "district", "27"),

    # Донецька (28)
    ("49", "Кальміуський район", "Кальміус р-н", "district", "28"),
    ("50", "Краматорський район", "Краматорськ р-н", "district", "28"),
    ("51", "Горлівський район", "Горлівка р-н", "district", "28"),
    ("52", "Маріупольський район", "Маріуполь р-н", "district", "28"),
    ("53", "Донецький район", "Донецьк р-н", "district", "28"),
    ("54", "Бахмутський район", "Бахмут р-н", "district", "28"),
    ("55", "Волноваський район", "Волноваха р-н", "district", "28"),
    ("56", "Покровський район", "Покровськ р-н", "district", "28"),
]

# Regional centre per subdivision: (lat, lon, city) for weather lookups
REGIONAL_CENTRES: Dict[str, Tuple[float, float, str]] = {
    "3": (49.4216, 26.9965, "Хмельницький"),
    "4": (49.2328, 28.4816, "Вінниця"),
    "5": (50.6199, 26.2516, "Рівне"),
    "8": (50.7472, 25.3254, "Луцьк"),
    "9": (48.4647, 35.0462, "Дніпро"),
    "10": (50.2547, 28.6587, "Житомир"),
    "11": (48.6208, 22.2879, "Ужгород"),
    "12": (47.8388, 35.1396, "Запоріжжя"),
    "13": (48.9226, 24.7111, "Івано-Франківськ"),
    "14": (50.4501, 30.5234, "Київ"),
    "15": (48.5079, 32.2623, "Кропивницький"),
    "16": (48.5740, 39.3078, "Луганськ"),
    "17": (46.9750, 31.9946, "Миколаїв"),
    "18": (46.4825, 30.7233, "Одеса"),
    "19": (49.5883, 34.5514, "Полтава"),
    "20": (50.9077, 34.7981, "Суми"),
    "21": (49.5535, 25.5948, "Тернопіль"),
    "22": (49.9935, 36.2304, "Харків"),
    "23": (46.6354, 32.6169, "Херсон"),
    "24": (49.4285, 32.0621, "Черкаси"),
    "25": (51.4982, 31.2893, "Чернігів"),
    "26": (48.2915, 25.9358, "Чернівці"),
    "27": (49.8397, 24.0297, "Львів"),
    "28": (48.0159, 37.8028, "Донецьк"),
    "31": (50.4501, 30.5234, "Київ"),
}

DEFAULT_CENTRE_UID = "24"
